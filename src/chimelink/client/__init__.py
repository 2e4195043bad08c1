"""HTTP client layer for chimelink.

Classes:
    :class:`RequestChannel` -- authenticated requests with transparent
    session-token renewal and FIFO replay of requests rejected with 401.
    :class:`ChannelResponse` -- a response paired with its parsed JSON body.

:func:`create_http_client` builds the underlying :class:`httpx.AsyncClient`.

Example::

    from chimelink.client import RequestChannel, create_http_client

    channel = RequestChannel(create_http_client(), store)
    result = await channel.send("POST", url, json_body={"ManualAvailability": "busy"})
"""

from chimelink.client.channel import ChannelState, PendingRequest, RequestChannel
from chimelink.client.http import create_http_client
from chimelink.client.response import ChannelResponse

__all__ = [
    "ChannelResponse",
    "ChannelState",
    "PendingRequest",
    "RequestChannel",
    "create_http_client",
]
