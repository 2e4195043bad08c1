"""Device registration against the Chime sign-in service.

Registration exchanges a fresh session token for the session's identity
and the set of REST endpoints the rest of the client uses.  The request is
sent through the :class:`~chimelink.client.channel.RequestChannel` but is
never renewable: a 401 here means the token itself is bad, and renewal
would need the very endpoints registration is supposed to deliver.
"""

from __future__ import annotations

import logging
from typing import Any

from chimelink.client.channel import RequestChannel
from chimelink.exceptions import RequestFailedError
from chimelink.models import DEFAULT_CAPABILITIES, ServiceEndpoints
from chimelink.store import SessionTokenStore

logger = logging.getLogger(__name__)

PLATFORM = "osx"


def build_registration_request(device_token: str) -> dict[str, Any]:
    """Return the ``POST /sessions`` body describing this device."""
    return {
        "Device": {
            "Platform": PLATFORM,
            "DeviceToken": device_token,
            "Capabilities": int(DEFAULT_CAPABILITIES),
        }
    }


async def register_device(
    channel: RequestChannel,
    store: SessionTokenStore,
    server: str,
    token: str,
    device_token: str,
) -> ServiceEndpoints:
    """Register the device and populate *store* from the response.

    Args:
        channel: Channel used to send the request.
        store: Store to populate.
        server: Sign-in service base URL.
        token: Session token obtained from the login flow.
        device_token: This device's persistent identifier.

    Returns:
        The endpoint set now held by *store*.

    Raises:
        RequestFailedError: On transport errors, non-2xx statuses, or a
            response without a JSON body.
        BadResponseError: If the JSON body lacks a required field.
    """
    url = f"{server.rstrip('/')}/sessions"
    logger.info("Registering device %s", device_token)
    try:
        result = await channel.send(
            "POST",
            url,
            json_body=build_registration_request(device_token),
            params={"Token": token},
            renewable=False,
        )
    except RequestFailedError as exc:
        raise RequestFailedError("Device registration failed") from exc

    if not result.is_success or result.json is None:
        logger.error(
            "Device registration failed: HTTP %d %s",
            result.status_code,
            result.response.reason_phrase,
        )
        raise RequestFailedError("Device registration failed", status_code=result.status_code)

    store.populate_from_registration(result.json)
    assert store.endpoints is not None
    return store.endpoints
