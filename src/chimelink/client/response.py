"""Response wrapper handed back by :class:`~chimelink.client.channel.RequestChannel`.

Every channel response is delivered together with at most one parsed JSON
body.  The body is parsed only when the media type is exactly
``application/json``; anything else (HTML error pages, empty 204s) leaves
:attr:`ChannelResponse.json` as ``None`` and the raw response untouched.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from chimelink.document import media_type

logger = logging.getLogger(__name__)


@dataclass
class ChannelResponse:
    """A completed channel request.

    Attributes:
        response: The raw :class:`httpx.Response`.
        json: The decoded JSON body, or ``None`` when the response is not
            JSON or fails to parse.
    """

    response: httpx.Response
    json: Any = None

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def is_success(self) -> bool:
        return self.response.is_success


def parse_json_body(response: httpx.Response) -> Optional[Any]:
    """Decode the body of an ``application/json`` response.

    Returns:
        The decoded value, or ``None`` for other media types, empty bodies,
        and undecodable JSON (logged as a warning).
    """
    if media_type(response) != "application/json" or not response.content:
        return None
    try:
        return json.loads(response.content)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("Error loading data from %s: %s", response.url, exc)
        return None


def wrap_response(response: httpx.Response) -> ChannelResponse:
    """Pair *response* with its parsed JSON body."""
    return ChannelResponse(response=response, json=parse_json_body(response))
