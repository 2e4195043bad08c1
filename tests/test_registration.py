"""Tests for chimelink.registration -- device registration."""

from __future__ import annotations

import json

import pytest

from chimelink.client.channel import RequestChannel
from chimelink.client.http import create_http_client
from chimelink.exceptions import BadResponseError, RequestFailedError
from chimelink.models import DEFAULT_CAPABILITIES, DeviceCapability
from chimelink.registration import build_registration_request, register_device
from chimelink.store import SessionTokenStore

from conftest import ENDPOINTS, SERVER, FakeChime, registration_document

SESSIONS_URL = "https://signin.example.com/sessions"


class TestBuildRegistrationRequest:
    def test_capabilities_value(self) -> None:
        assert int(DEFAULT_CAPABILITIES) == 22
        assert DEFAULT_CAPABILITIES == (
            DeviceCapability.PUSH_DELIVERY_RECEIPTS
            | DeviceCapability.PRESENCE_PUSH
            | DeviceCapability.PRESENCE_SUBSCRIPTION
        )

    def test_body(self) -> None:
        assert build_registration_request("dev-token") == {
            "Device": {"Platform": "osx", "DeviceToken": "dev-token", "Capabilities": 22}
        }


class TestRegisterDevice:
    @pytest.fixture()
    def fake(self) -> FakeChime:
        return FakeChime()

    async def _register(self, fake: FakeChime, store: SessionTokenStore):
        client = create_http_client(transport=fake.transport)
        channel = RequestChannel(client, store)
        try:
            return await register_device(channel, store, SERVER, "ABC123", "dev-token")
        finally:
            await channel.close()
            await client.aclose()

    @pytest.mark.asyncio
    async def test_success_populates_store(self, fake: FakeChime) -> None:
        fake.add_registration()
        store = SessionTokenStore("ABC123")

        endpoints = await self._register(fake, store)

        assert endpoints == ENDPOINTS
        assert store.get_token() == "REGISTERED"
        assert store.display_name == "Una User"

        request = fake.requests_to("POST", SESSIONS_URL)[0]
        assert request.url.params["Token"] == "ABC123"
        assert request.headers["cookie"] == "_aws_wt_session=ABC123"
        assert json.loads(request.content)["Device"]["Capabilities"] == 22
        assert json.loads(request.content)["Device"]["DeviceToken"] == "dev-token"

    @pytest.mark.asyncio
    async def test_server_without_trailing_slash(self, fake: FakeChime) -> None:
        fake.add_registration()
        store = SessionTokenStore("ABC123")
        client = create_http_client(transport=fake.transport)
        channel = RequestChannel(client, store)

        await register_device(channel, store, SERVER.rstrip("/"), "ABC123", "dev-token")

        assert len(fake.requests_to("POST", SESSIONS_URL)) == 1
        await client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 403, 500])
    async def test_error_status(self, fake: FakeChime, status: int) -> None:
        fake.route("POST", SESSIONS_URL, status=status, json={"error": "no"})
        store = SessionTokenStore("ABC123")

        with pytest.raises(RequestFailedError, match="Device registration failed") as exc_info:
            await self._register(fake, store)

        assert exc_info.value.status_code == status
        assert store.is_registered is False

    @pytest.mark.asyncio
    async def test_401_is_not_renewed(self, fake: FakeChime) -> None:
        fake.route("POST", SESSIONS_URL, status=401)
        store = SessionTokenStore("ABC123")
        store.endpoints = ENDPOINTS

        with pytest.raises(RequestFailedError):
            await self._register(fake, store)

        assert fake.requests_to("POST", "https://profile.example.com/tokens") == []

    @pytest.mark.asyncio
    async def test_non_json_body(self, fake: FakeChime) -> None:
        fake.route("POST", SESSIONS_URL, html="<p>welcome</p>")
        store = SessionTokenStore("ABC123")

        with pytest.raises(RequestFailedError, match="Device registration failed"):
            await self._register(fake, store)

    @pytest.mark.asyncio
    async def test_incomplete_document(self, fake: FakeChime) -> None:
        document = registration_document()
        del document["Session"]["ServiceConfig"]["Contacts"]
        fake.add_registration(document)
        store = SessionTokenStore("ABC123")

        with pytest.raises(BadResponseError, match="Failed to process registration response"):
            await self._register(fake, store)

        assert store.get_token() == "ABC123"
        assert store.endpoints is None
