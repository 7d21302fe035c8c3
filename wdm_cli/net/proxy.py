"""
Builds request options: proxy resolution, SSL handling, headers and a
curl-equivalent trace of each request for operator debugging.

Scheme downgrade: when a request for an ``https`` URL is routed through a
proxy, the URL is rewritten to ``http`` before it is handed to the proxy.
Many corporate proxies terminate TLS themselves and expect the client to send
plain http. A direct request (no proxy) is never rewritten.
"""

import logging
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlsplit

from wdm_cli.models.config import ProxyEnvironment

log = logging.getLogger(__name__)

# Default Linux connect timeouts vary between 20 and 120 seconds; downloads
# of the server jar over slow links need more than that.
DEFAULT_TIMEOUT_S = 240.0

_SECRET_HEADERS = {"authorization", "proxy-authorization"}


@dataclass(frozen=True)
class HttpOptions:
    """Caller-supplied network settings for a single request."""

    proxy: str | None = None
    ignore_ssl: bool = False
    headers: dict[str, str] = field(default_factory=dict)
    environment: ProxyEnvironment = field(default_factory=ProxyEnvironment)
    timeout: float = DEFAULT_TIMEOUT_S


@dataclass(frozen=True)
class RequestOptions:
    """The fully resolved request that is sent over the wire."""

    url: str
    original_url: str
    proxy: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    ignore_ssl: bool = False
    timeout: float = DEFAULT_TIMEOUT_S

    @property
    def downgraded(self) -> bool:
        return self.url != self.original_url


def resolve_proxy(
    request_url: str,
    proxy: str | None = None,
    environment: ProxyEnvironment | None = None,
) -> str | None:
    """
    Resolves the proxy for a request.

    An explicit proxy always wins. Otherwise a no-proxy token contained in the
    hostname disables proxying. Otherwise ``https`` requests use the secure
    proxy, falling back to the plain one, and ``http`` requests use only the
    plain proxy.

    Returns:
        The proxy URL, or None when the request should go direct.
    """
    if proxy:
        return proxy

    env = environment or ProxyEnvironment()
    parts = urlsplit(request_url)
    hostname = parts.hostname or ""

    if env.no_proxy:
        for token in env.no_proxy.split(","):
            token = token.strip()
            if token and token in hostname:
                return None

    if parts.scheme == "https":
        return env.https_proxy or env.http_proxy
    if parts.scheme == "http":
        return env.http_proxy
    return None


def build_request(request_url: str, options: HttpOptions) -> RequestOptions:
    """Applies proxy, scheme downgrade, SSL and header settings to a URL."""
    proxy = resolve_proxy(request_url, options.proxy, options.environment)
    url = request_url
    if proxy and urlsplit(request_url).scheme == "https":
        url = "http:" + request_url[len("https:") :]
        log.debug(f"Routing {request_url} through proxy {proxy} as {url}")
    return RequestOptions(
        url=url,
        original_url=request_url,
        proxy=proxy,
        headers=dict(options.headers),
        ignore_ssl=options.ignore_ssl,
        timeout=options.timeout,
    )


def add_header(request: RequestOptions, name: str, value: str) -> RequestOptions:
    """Returns a copy of the request with the header set, replacing any old value."""
    headers = dict(request.headers)
    headers[name] = value
    return RequestOptions(
        url=request.url,
        original_url=request.original_url,
        proxy=request.proxy,
        headers=headers,
        ignore_ssl=request.ignore_ssl,
        timeout=request.timeout,
    )


def curl_command(request: RequestOptions, file_name: str | None = None) -> str:
    """
    Builds a curl command equivalent to the request, for logging only.

    Secret header values are masked. Nothing is executed.
    """
    curl = f"'{request.url}'"
    if request.proxy:
        parts = urlsplit(request.url)
        path = parts.path or "/"
        if parts.query:
            path += f"?{parts.query}"
        curl = f"'{urljoin(request.proxy, path)}' -H 'host: {parts.netloc}'"

    for name, value in request.headers.items():
        shown = "****" if name.lower() in _SECRET_HEADERS else value
        curl += f" -H '{name}: {shown}'"

    if request.ignore_ssl:
        curl = f"-k {curl}"
    if file_name:
        curl = f"-o {file_name} {curl}"
    return f"curl {curl}"
