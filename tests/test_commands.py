import json
from pathlib import Path

import pytest
from aiohttp import web

from _utils import bucket_listing, make_zip
from wdm_cli.core import commands
from wdm_cli.exceptions import ProcessSpawnError
from wdm_cli.models.config import ProxyEnvironment
from wdm_cli.models.stats import UpdateStats
from wdm_cli.providers import ProviderKind

ZIP = make_zip("chromedriver", b"#!chromedriver")


def _chrome_bucket() -> web.Application:
    keys = {
        "2.39/chromedriver_linux64.zip": len(ZIP),
        "2.40/chromedriver_linux64.zip": len(ZIP),
    }

    async def listing(request):
        return web.Response(text=bucket_listing(keys), content_type="application/xml")

    async def archive(request):
        return web.Response(body=ZIP)

    app = web.Application()
    app.router.add_get("/", listing)
    app.router.add_get("/{version}/chromedriver_linux64.zip", archive)
    return app


def _selenium_bucket() -> web.Application:
    jar = b"PK fake jar"
    keys = {"3.141/selenium-server-standalone-3.141.59.jar": len(jar)}

    async def listing(request):
        return web.Response(text=bucket_listing(keys), content_type="application/xml")

    async def download(request):
        return web.Response(body=jar)

    app = web.Application()
    app.router.add_get("/", listing)
    app.router.add_get("/{dir}/selenium-server-standalone-{version}.jar", download)
    return app


def _undecodable_catalog() -> web.Application:
    async def releases(request):
        return web.Response(body=b"\xff\xfe<bad", content_type="application/json")

    app = web.Application()
    app.router.add_get("/releases", releases)
    return app


def _options(tmp_path, providers, **kwargs) -> commands.Options:
    return commands.Options(
        providers=providers,
        out_dir=str(tmp_path),
        os_type="Linux",
        os_arch="x86_64",
        environment=ProxyEnvironment(),
        **kwargs,
    )


class TestConstructProviders:
    def test_selected_only(self, tmp_path):
        options = commands.construct_providers(
            chrome=True,
            appium=True,
            versions={"chrome": "2.40", "gecko": "0.33"},
            out_dir=str(tmp_path),
        )
        assert [(p.kind, p.version) for p in options.providers] == [
            (ProviderKind.CHROMEDRIVER, "2.40"),
            (ProviderKind.APPIUM, None),
        ]
        assert options.server is None
        assert options.out_dir == str(tmp_path)

    def test_all_providers_include_server(self):
        options = commands.construct_all_providers(
            versions={"standalone": "3.141.59"}, port=5555
        )
        assert [p.kind for p in options.providers] == [
            ProviderKind.CHROMEDRIVER,
            ProviderKind.GECKODRIVER,
            ProviderKind.IEDRIVER,
        ]
        assert options.server.version == "3.141.59"
        assert options.server.port == 5555

    def test_server_config_logs_to_file_when_detached(self, tmp_path):
        options = commands.construct_providers(
            standalone=True,
            detach=True,
            standalone_node=True,
            hub="http://hub:4444/grid/register",
            out_dir=str(tmp_path),
        )
        config = options.server_config()
        assert config.detach
        assert config.run_as_node
        assert config.hub == "http://hub:4444/grid/register"
        assert config.log_file == str(Path(tmp_path) / commands.SERVER_LOG)

    def test_server_config_attached_has_no_log_file(self, tmp_path):
        options = commands.construct_providers(standalone=True, out_dir=str(tmp_path))
        assert options.server_config().log_file is None
        assert options.server_config(port=5000).port == 5000


class TestUpdate:
    def test_nothing_selected(self, event_loop, tmp_path):
        assert event_loop.run_until_complete(commands.update(_options(tmp_path, []))) == ""

    def test_failing_provider_does_not_affect_siblings(
        self, event_loop, serve, tmp_path
    ):
        chrome_url = serve(_chrome_bucket()) + "/"
        missing_url = serve(web.Application()) + "/releases"
        options = _options(
            tmp_path,
            [
                commands.ProviderOptions(kind="chromedriver", catalog_url=chrome_url),
                commands.ProviderOptions(kind="geckodriver", catalog_url=missing_url),
            ],
        )
        stats = UpdateStats()
        report = event_loop.run_until_complete(commands.update(options, stats=stats))

        lines = report.splitlines()
        assert lines[0].startswith("chromedriver 2.40: downloaded chromedriver_2.40 (")
        assert lines[1].startswith("geckodriver: failed (")
        assert stats.downloaded == ["chromedriver"]
        assert stats.failed == ["geckodriver"]
        assert (tmp_path / "chromedriver_2.40").is_file()

        again = event_loop.run_until_complete(commands.update(options))
        assert again.splitlines()[0] == "chromedriver 2.40: already current"

    def test_undecodable_catalog_fails_only_its_provider(
        self, event_loop, serve, tmp_path
    ):
        options = _options(
            tmp_path,
            [
                commands.ProviderOptions(
                    kind="chromedriver", catalog_url=serve(_chrome_bucket()) + "/"
                ),
                commands.ProviderOptions(
                    kind="geckodriver",
                    catalog_url=serve(_undecodable_catalog()) + "/releases",
                ),
            ],
        )
        lines = event_loop.run_until_complete(commands.update(options)).splitlines()

        assert lines[0].startswith("chromedriver 2.40: downloaded")
        assert lines[1].startswith("geckodriver: failed (")
        assert "not valid text" in lines[1]

    def test_unsupported_os_fails_only_platform_bound_providers(
        self, event_loop, serve, tmp_path
    ):
        options = commands.Options(
            providers=[
                commands.ProviderOptions(
                    kind="chromedriver", catalog_url=serve(_chrome_bucket()) + "/"
                )
            ],
            server=commands.ServerOptions(catalog_url=serve(_selenium_bucket()) + "/"),
            out_dir=str(tmp_path),
            os_type="FreeBSD",
            os_arch="amd64",
            environment=ProxyEnvironment(),
        )
        lines = event_loop.run_until_complete(commands.update(options)).splitlines()

        assert lines[0].startswith("chromedriver: failed (Unsupported operating system")
        assert lines[1].startswith("selenium-server 3.141.59: downloaded")
        assert (tmp_path / "selenium-server-standalone-3.141.59.jar").is_file()

    def test_status_and_clean_after_update(self, event_loop, serve, tmp_path):
        chrome_url = serve(_chrome_bucket()) + "/"
        for version in ("2.39", "2.40"):
            options = _options(
                tmp_path,
                [
                    commands.ProviderOptions(
                        kind="chromedriver", version=version, catalog_url=chrome_url
                    )
                ],
            )
            event_loop.run_until_complete(commands.update(options))

        assert commands.status(options) == "chromedriver: 2.40 (last), 2.39"

        removed = commands.clean(options).splitlines()
        assert "chromedriver.config.json" in removed
        assert "chromedriver_2.39.zip" in removed
        assert len(removed) == 6
        assert commands.status(options) == ""


class TestStatusAndClean:
    def test_missing_directory(self, tmp_path):
        options = commands.construct_all_providers(out_dir=str(tmp_path / "missing"))
        assert commands.status(options) == ""
        assert commands.clean(options) == ""

    def test_empty_directory(self, tmp_path):
        options = commands.construct_all_providers(out_dir=str(tmp_path))
        assert commands.status(options) == ""
        assert commands.clean(options) == ""

    def test_unrelated_files_are_kept(self, tmp_path):
        (tmp_path / "notes.txt").write_text("x")
        (tmp_path / "chromedriver_2.40").write_text("x")
        options = commands.construct_providers(gecko=True, out_dir=str(tmp_path))
        assert commands.clean(options) == ""
        assert sorted(p.name for p in tmp_path.iterdir()) == [
            "chromedriver_2.40",
            "notes.txt",
        ]


class TestServerCommands:
    def test_start_without_jar(self, event_loop, tmp_path):
        options = commands.construct_providers(standalone=True, out_dir=str(tmp_path))
        with pytest.raises(ProcessSpawnError, match="wdm update --standalone"):
            event_loop.run_until_complete(commands.start(options))

    def test_shutdown_without_record(self, event_loop, tmp_path):
        options = commands.construct_providers(out_dir=str(tmp_path))
        assert event_loop.run_until_complete(commands.shutdown(options)) is False

    def test_shutdown_discards_unreadable_record(self, event_loop, tmp_path):
        record = tmp_path / "selenium-server.pid.json"
        record.write_text(json.dumps({"role": "standalone"}))
        options = commands.construct_providers(out_dir=str(tmp_path))

        assert event_loop.run_until_complete(commands.shutdown(options)) is False
        assert not record.exists()
