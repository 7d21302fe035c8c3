"""
Handles the network transfers of catalogs and binaries.

Binary downloads are idempotent: when a local file already has the size the
server declares, nothing is transferred. Otherwise the body is streamed to a
temporary ``.part`` file that only replaces the destination once its size has
been verified. A failed or short transfer never leaves a file behind.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiohttp
from rich.markup import escape

from wdm_cli.exceptions import ParseError, TransferError
from wdm_cli.utils.structured_logger import TransferLogger

from .proxy import HttpOptions, RequestOptions, build_request, curl_command

log = logging.getLogger(__name__)

CHUNK_SIZE = 131072  # 128 KB


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a single binary request."""

    path: Path
    already_current: bool
    bytes_transferred: int
    content_length: int | None


def create_session() -> aiohttp.ClientSession:
    """
    Creates a session for one provider update. Must be called from a coroutine.

    Proxies are passed per request, so the session ignores proxy variables.
    """
    connector = aiohttp.TCPConnector(
        limit=4,
        ttl_dns_cache=300,
        enable_cleanup_closed=True,
    )
    return aiohttp.ClientSession(connector=connector, trust_env=False)


def _request_kwargs(request: RequestOptions) -> dict:
    kwargs = {
        "headers": request.headers,
        "proxy": request.proxy,
        "allow_redirects": True,
        "timeout": aiohttp.ClientTimeout(
            total=request.timeout, sock_connect=30, sock_read=90
        ),
    }
    if request.ignore_ssl:
        kwargs["ssl"] = False
    return kwargs


def _local_size(path: Path) -> int | None:
    try:
        return path.stat().st_size
    except FileNotFoundError:
        return None


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


async def request_body(
    session: aiohttp.ClientSession, request_url: str, options: HttpOptions
) -> str:
    """
    Requests a URL and returns the response body as text.

    Raises:
        TransferError: On a network failure or a status other than 200.
        ParseError: If the body cannot be decoded as text.
    """
    request = build_request(request_url, options)
    log.info(escape(curl_command(request)))
    try:
        async with session.get(request.url, **_request_kwargs(request)) as response:
            if response.status != 200:
                raise TransferError(
                    f"Request to {request_url} returned status {response.status}, "
                    "expected 200."
                )
            try:
                return await response.text()
            except UnicodeDecodeError as e:
                raise ParseError(
                    f"Response from {request_url} is not valid text: {e}"
                ) from e
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise TransferError(f"Request to {request_url} failed: {e}") from e


async def request_binary(
    session: aiohttp.ClientSession,
    binary_url: str,
    destination: Path,
    options: HttpOptions,
    expected_size: int | None = None,
    events: TransferLogger | None = None,
) -> TransferResult:
    """
    Downloads a binary to ``destination`` unless an identical-size copy exists.

    Args:
        session: The provider's HTTP session.
        binary_url: Where to download from.
        destination: Final path of the file.
        options: Proxy, SSL and header settings.
        expected_size: The catalog's size, used when the server sends no
            Content-Length.
        events: Optional structured event logger.

    Returns:
        A TransferResult; ``already_current`` is True when zero bytes moved.

    Raises:
        TransferError: On a network failure, a non-200 status or a size
            mismatch. Any partial file has been removed by then.
    """
    # Compressed transfer encodings would make Content-Length meaningless
    request = build_request(binary_url, options)
    request = RequestOptions(
        url=request.url,
        original_url=request.original_url,
        proxy=request.proxy,
        headers={**request.headers, "Accept-Encoding": "identity"},
        ignore_ssl=request.ignore_ssl,
        timeout=request.timeout,
    )
    log.info(escape(curl_command(request, destination.name)))

    await asyncio.to_thread(destination.parent.mkdir, parents=True, exist_ok=True)
    partial = destination.with_name(destination.name + ".part")
    started = time.monotonic()

    try:
        async with session.get(request.url, **_request_kwargs(request)) as response:
            if response.status != 200:
                raise TransferError(
                    f"Download of {binary_url} returned status {response.status}, "
                    "expected 200."
                )

            content_length = response.content_length
            local_size = await asyncio.to_thread(_local_size, destination)
            if content_length is not None and local_size == content_length:
                log.debug(f"{destination.name} is already current, skipping.")
                if events:
                    events.transfer_skipped(str(destination), content_length)
                return TransferResult(destination, True, 0, content_length)

            if events:
                events.transfer_started(binary_url, str(destination), request.proxy)

            bytes_written = 0
            async with aiofiles.open(partial, "wb") as f:
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    await f.write(chunk)
                    bytes_written += len(chunk)

        expected = content_length if content_length is not None else expected_size or None
        actual = await asyncio.to_thread(_local_size, partial)
        if expected is not None and actual != expected:
            raise TransferError(
                f"Size mismatch for {destination.name}: expected {expected} bytes, "
                f"got {actual}."
            )
        await asyncio.to_thread(os.replace, partial, destination)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        if events:
            events.transfer_failed(binary_url, str(e))
        raise TransferError(f"Download of {binary_url} failed: {e}") from e
    except TransferError as e:
        if events:
            events.transfer_failed(binary_url, str(e))
        raise
    finally:
        await asyncio.to_thread(_remove_quietly, partial)

    if events:
        events.transfer_completed(str(destination), bytes_written, time.monotonic() - started)
    return TransferResult(destination, False, bytes_written, content_length)
