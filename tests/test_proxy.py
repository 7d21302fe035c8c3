from wdm_cli.models.config import ProxyEnvironment
from wdm_cli.net.proxy import (
    DEFAULT_TIMEOUT_S,
    HttpOptions,
    add_header,
    build_request,
    curl_command,
    resolve_proxy,
)


class TestProxyEnvironment:
    def test_upper_case_wins(self):
        env = ProxyEnvironment.from_environ(
            {"HTTPS_PROXY": "http://upper:3128", "https_proxy": "http://lower:3128"}
        )
        assert env.https_proxy == "http://upper:3128"

    def test_lower_case_is_read(self):
        env = ProxyEnvironment.from_environ(
            {"http_proxy": "http://p:8080", "no_proxy": "localhost"}
        )
        assert env.http_proxy == "http://p:8080"
        assert env.no_proxy == "localhost"
        assert env.https_proxy is None

    def test_github_token(self):
        env = ProxyEnvironment.from_environ({"GITHUB_TOKEN": "abc"})
        assert env.github_token == "abc"
        assert "abc" not in repr(env)


class TestResolveProxy:
    def test_http_request_with_only_https_proxy_goes_direct(self):
        env = ProxyEnvironment(https_proxy="http://secure:3128")
        assert resolve_proxy("http://example.com/file", environment=env) is None

    def test_https_request_falls_back_to_plain_proxy(self):
        env = ProxyEnvironment(http_proxy="http://plain:3128")
        assert resolve_proxy("https://example.com/file", environment=env) == (
            "http://plain:3128"
        )

    def test_https_request_prefers_secure_proxy(self):
        env = ProxyEnvironment(
            https_proxy="http://secure:3128", http_proxy="http://plain:3128"
        )
        assert resolve_proxy("https://example.com/", environment=env) == (
            "http://secure:3128"
        )

    def test_explicit_proxy_wins(self):
        env = ProxyEnvironment(https_proxy="http://secure:3128", no_proxy="example.com")
        assert resolve_proxy("https://example.com/", "http://mine:1", env) == (
            "http://mine:1"
        )

    def test_no_proxy_token_in_hostname(self):
        env = ProxyEnvironment(
            https_proxy="http://secure:3128", no_proxy="internal, googleapis.com"
        )
        assert (
            resolve_proxy("https://chromedriver.storage.googleapis.com/", environment=env)
            is None
        )
        assert resolve_proxy("https://github.com/", environment=env) == (
            "http://secure:3128"
        )

    def test_no_environment_means_direct(self):
        assert resolve_proxy("https://example.com/") is None


class TestBuildRequest:
    def test_https_through_proxy_is_downgraded(self):
        request = build_request(
            "https://selenium-release.storage.googleapis.com/",
            HttpOptions(proxy="http://proxy:3128"),
        )
        assert request.url == "http://selenium-release.storage.googleapis.com/"
        assert request.original_url == "https://selenium-release.storage.googleapis.com/"
        assert request.proxy == "http://proxy:3128"
        assert request.downgraded

    def test_direct_request_is_not_rewritten(self):
        request = build_request("https://example.com/a", HttpOptions())
        assert request.url == "https://example.com/a"
        assert request.proxy is None
        assert not request.downgraded
        assert request.timeout == DEFAULT_TIMEOUT_S

    def test_headers_and_ssl_are_carried(self):
        options = HttpOptions(ignore_ssl=True, headers={"Accept": "application/json"})
        request = build_request("https://example.com/", options)
        assert request.ignore_ssl
        assert request.headers == {"Accept": "application/json"}

    def test_add_header_returns_copy(self):
        request = build_request("https://example.com/", HttpOptions())
        updated = add_header(request, "Authorization", "token x")
        assert updated.headers == {"Authorization": "token x"}
        assert request.headers == {}


class TestCurlCommand:
    def test_direct_download(self):
        request = build_request("https://example.com/a.zip", HttpOptions(ignore_ssl=True))
        assert curl_command(request, "a.zip") == "curl -o a.zip -k 'https://example.com/a.zip'"

    def test_proxy_and_masked_secret_headers(self):
        request = build_request(
            "https://api.github.com/repos/x/releases?page=2",
            HttpOptions(
                proxy="http://proxy:3128",
                headers={"Authorization": "token secret", "Accept": "*/*"},
            ),
        )
        command = curl_command(request)
        assert command.startswith("curl 'http://proxy:3128/repos/x/releases?page=2'")
        assert "-H 'host: api.github.com'" in command
        assert "-H 'Authorization: ****'" in command
        assert "-H 'Accept: */*'" in command
        assert "secret" not in command
