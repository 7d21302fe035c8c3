import asyncio

import pytest
from aiohttp import web


@pytest.fixture
def event_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()
    asyncio.set_event_loop(None)


@pytest.fixture
def serve(event_loop):
    """Starts an aiohttp application on 127.0.0.1 and returns its base URL."""
    runners = []

    def _serve(app: web.Application) -> str:
        runner = web.AppRunner(app)
        event_loop.run_until_complete(runner.setup())
        site = web.TCPSite(runner, "127.0.0.1", 0)
        event_loop.run_until_complete(site.start())
        runners.append(runner)
        host, port = runner.addresses[0][:2]
        return f"http://{host}:{port}"

    yield _serve
    for runner in runners:
        event_loop.run_until_complete(runner.cleanup())

