"""
Network Layer.

This package resolves proxies and performs the catalog and binary transfers
for the providers.
"""

from .proxy import (
    HttpOptions,
    RequestOptions,
    add_header,
    build_request,
    curl_command,
    resolve_proxy,
)
from .transfer import TransferResult, create_session, request_binary, request_body

__all__ = [
    "HttpOptions",
    "RequestOptions",
    "TransferResult",
    "add_header",
    "build_request",
    "create_session",
    "curl_command",
    "request_binary",
    "request_body",
    "resolve_proxy",
]
