"""Construction of the :class:`httpx.AsyncClient` instances chimelink uses.

Two kinds of client exist per connection: a long-lived one behind the
:class:`~chimelink.client.channel.RequestChannel`, and a short-lived one
(with its own cookie jar) for each login flow.  Both are built here so that
timeouts, TLS verification and traffic logging are configured in one place.

Traffic logging is switched on by the account's ``debug`` flag only; it
logs every request line and response status at ``DEBUG`` through
:mod:`logging`.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from chimelink.models import RequestConfig

logger = logging.getLogger(__name__)


async def _log_request(request: httpx.Request) -> None:
    logger.debug("> %s %s", request.method, request.url)


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    logger.debug(
        "< %d %s (%s %s)",
        response.status_code,
        response.reason_phrase,
        request.method,
        request.url,
    )


def create_http_client(
    config: Optional[RequestConfig] = None,
    debug: bool = False,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Build an async HTTP client that follows redirects.

    Args:
        config: Timeout and TLS settings; defaults to :class:`RequestConfig`.
        debug: Log every request and response through :mod:`logging`.
        transport: Custom transport, e.g. :class:`httpx.MockTransport` in
            tests.
    """
    config = config or RequestConfig()
    event_hooks: dict[str, list] = {"request": [], "response": []}
    if debug:
        event_hooks["request"].append(_log_request)
        event_hooks["response"].append(_log_response)

    kwargs = {}
    if transport is not None:
        kwargs["transport"] = transport

    return httpx.AsyncClient(
        timeout=config.timeout,
        verify=config.verify_ssl,
        follow_redirects=True,
        event_hooks=event_hooks,
        **kwargs,
    )
