"""Canonical Pydantic models shared across chimelink modules.

The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`AccountConfig`, :class:`OutputConfig`
    and :class:`GlobalConfig`.

**Registration models** -- the shape of the device-registration response
consumed by :meth:`~chimelink.store.SessionTokenStore.populate_from_registration`:
    :class:`RegistrationDocument` and its nested parts, plus the
    :class:`ServiceEndpoints` set the rest of the client talks to.

All models use Pydantic v2.  Registration models ignore unknown keys (the
server sends far more than we consume) but every declared field is
required, so validation doubles as the all-or-nothing field check.
"""

from __future__ import annotations

import enum
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_SERVER = "https://signin.id.ue1.app.chime.aws/"


# --- Configuration ---


class RequestConfig(BaseModel):
    """HTTP settings applied to every request made for an account."""

    timeout: int = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class AccountConfig(BaseModel):
    """Per-account settings stored as JSON under the ``accounts/`` config directory.

    An account names the e-mail address used to sign in and the sign-in
    server that both starts the web login and accepts device
    registrations.  ``device_token`` identifies this client installation
    to the service and is generated once, then kept with the account.

    See Also:
        :func:`~chimelink.config.load_account`: Deserialise an account by name.
        :func:`~chimelink.config.save_account`: Persist an account to disk.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    email: str = Field(description="Account e-mail address used for provider discovery")
    server: str = Field(
        default=DEFAULT_SERVER,
        description="Sign-in server: login entry page and device registration base URL",
    )
    device_token: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Stable identifier for this client installation",
    )
    debug: bool = Field(
        default=False, description="Log every HTTP request and response status"
    )
    persist_token: bool = Field(
        default=True, description="Keep the session token between runs"
    )
    password_source: str = Field(
        default="prompt",
        description="Where the provider password comes from: prompt, env:VAR, file:/path",
    )
    request: RequestConfig = Field(default_factory=RequestConfig)


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/chimelink/config.json``.

    Fields here have the lowest precedence and can be overridden by project
    config, environment variables, or CLI flags.  See
    :func:`~chimelink.config.resolve_config` for the full precedence chain.
    """

    default_account: Optional[str] = None
    auto_select_single_account: bool = True
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Device registration ---


class DeviceCapability(enum.IntFlag):
    """Capability bits advertised in the device registration request."""

    PUSH_DELIVERY_RECEIPTS = 1 << 1
    PRESENCE_PUSH = 1 << 2
    WEBINAR = 1 << 3
    PRESENCE_SUBSCRIPTION = 1 << 4


DEFAULT_CAPABILITIES = (
    DeviceCapability.PUSH_DELIVERY_RECEIPTS
    | DeviceCapability.PRESENCE_PUSH
    | DeviceCapability.PRESENCE_SUBSCRIPTION
)


class ServiceEndpoints(BaseModel):
    """REST and push endpoints learned from one registration response."""

    model_config = ConfigDict(frozen=True)

    presence: str
    profile: str
    contacts: str
    messaging: str
    conference: str
    reachability: str
    websocket: str


class _Document(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RestService(_Document):
    rest_url: str = Field(alias="RestUrl")


class PushService(_Document):
    websocket_url: str = Field(alias="WebsocketUrl")
    reachability_url: str = Field(alias="ReachabilityUrl")


class ServiceConfigDocument(_Document):
    presence: RestService = Field(alias="Presence")
    push: PushService = Field(alias="Push")
    profile: RestService = Field(alias="Profile")
    contacts: RestService = Field(alias="Contacts")
    messaging: RestService = Field(alias="Messaging")
    conference: RestService = Field(alias="Conference")


class ProfileDocument(_Document):
    profile_channel: str
    presence_channel: str
    id: str
    display_name: str


class DeviceDocument(_Document):
    device_id: str = Field(alias="DeviceId")
    channel: str = Field(alias="Channel")


class SessionDocument(_Document):
    session_token: str = Field(alias="SessionToken", min_length=1)
    session_id: str = Field(alias="SessionId")
    profile: ProfileDocument = Field(alias="Profile")
    device: DeviceDocument = Field(alias="Device")
    service_config: ServiceConfigDocument = Field(alias="ServiceConfig")


class RegistrationDocument(_Document):
    """The ``POST /sessions`` response, reduced to the fields the client needs."""

    session: SessionDocument = Field(alias="Session")

    def endpoints(self) -> ServiceEndpoints:
        """Collect the service endpoint URLs into a :class:`ServiceEndpoints`."""
        services = self.session.service_config
        return ServiceEndpoints(
            presence=services.presence.rest_url,
            profile=services.profile.rest_url,
            contacts=services.contacts.rest_url,
            messaging=services.messaging.rest_url,
            conference=services.conference.rest_url,
            reachability=services.push.reachability_url,
            websocket=services.push.websocket_url,
        )
