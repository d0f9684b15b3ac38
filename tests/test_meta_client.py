"""Tests for the Meta Graph API client."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from conftest import META_ENV, make_response

from integration_apps.errors import AuthInvalidError, ConfigurationError, ErrorKind, RequestFailedError
from integration_apps.services.meta_client import MetaClient, MetaCredentials


@pytest.fixture
def client():
    return MetaClient.from_env(META_ENV)


class TestCredentials:
    def test_missing_token_raises_configuration_error(self):
        env = {k: v for k, v in META_ENV.items() if k != "META_ACCESS_TOKEN"}
        with pytest.raises(ConfigurationError, match="OAuth"):
            MetaCredentials.from_env(env)

    def test_token_optional_for_oauth_exchange(self):
        env = {k: v for k, v in META_ENV.items() if k != "META_ACCESS_TOKEN"}
        creds = MetaCredentials.from_env(env, require_token=False)
        assert creds.access_token is None

    def test_graph_version_from_env(self):
        creds = MetaCredentials.from_env({**META_ENV, "GRAPH_API_VERSION": "v19.0"})
        assert MetaClient(creds)._base_url.endswith("/v19.0")


class TestAuthClassification:
    @pytest.mark.asyncio
    async def test_http_401_is_auth_invalid(self, client):
        with patch.object(client._client, "request", AsyncMock(return_value=make_response(401, text="nope"))):
            with pytest.raises(AuthInvalidError):
                await client.get_pages()

    @pytest.mark.asyncio
    async def test_code_190_inside_200_is_auth_invalid(self, client):
        payload = {"error": {"message": "Session has expired", "code": 190, "type": "OAuthException"}}
        with patch.object(client._client, "request", AsyncMock(return_value=make_response(200, payload))):
            with pytest.raises(AuthInvalidError, match="Session has expired"):
                await client.get_pages()

    @pytest.mark.asyncio
    async def test_code_102_in_400_is_auth_invalid(self, client):
        payload = {"error": {"message": "Session key invalid", "code": 102}}
        with patch.object(client._client, "request", AsyncMock(return_value=make_response(400, payload))):
            with pytest.raises(AuthInvalidError):
                await client.get_pages()

    @pytest.mark.asyncio
    async def test_404_with_unrelated_code_is_request_failed(self, client):
        payload = {"error": {"message": "Unknown path components", "code": 2500, "type": "OAuthException"}}
        with patch.object(client._client, "request", AsyncMock(return_value=make_response(404, payload))):
            with pytest.raises(RequestFailedError) as exc_info:
                await client.get_pages()
        assert exc_info.value.kind is ErrorKind.PERMANENT
        assert exc_info.value.envelope.code == 2500


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_sends_text_message_with_token_param(self, client):
        mock = AsyncMock(return_value=make_response(200, {"messages": [{"id": "wamid.1"}]}))
        with patch.object(client._client, "request", mock):
            data = await client.send_message("pnid-1", "+15551234567", "Hello")

        assert data["messages"][0]["id"] == "wamid.1"
        method, path = mock.call_args.args
        assert (method, path) == ("POST", "/pnid-1/messages")
        assert mock.call_args.kwargs["params"] == {"access_token": "meta-user-token"}
        assert mock.call_args.kwargs["json"] == {
            "messaging_product": "whatsapp",
            "to": "+15551234567",
            "type": "text",
            "text": {"body": "Hello"},
        }


class TestInstagramAccounts:
    @pytest.mark.asyncio
    async def test_collects_linked_accounts_and_skips_failed_pages(self, client):
        mock = AsyncMock(
            side_effect=[
                make_response(200, {"data": [{"id": "p1"}, {"id": "p2"}, {"id": "p3"}]}),
                make_response(200, {"instagram_business_account": {"id": "ig1", "username": "clinic"}}),
                make_response(500, text="oops"),
                make_response(200, {"id": "p3"}),
            ]
        )
        with patch.object(client._client, "request", mock):
            accounts = await client.get_instagram_accounts()

        assert accounts == [
            {"id": "ig1", "username": "clinic", "name": None, "profile_picture_url": None, "page_id": "p1"}
        ]
        assert mock.call_count == 4

    @pytest.mark.asyncio
    async def test_auth_failure_on_a_page_propagates(self, client):
        mock = AsyncMock(
            side_effect=[
                make_response(200, {"data": [{"id": "p1"}, {"id": "p2"}]}),
                make_response(200, {"error": {"message": "Token expired", "code": 190}}),
            ]
        )
        with patch.object(client._client, "request", mock):
            with pytest.raises(AuthInvalidError):
                await client.get_instagram_accounts()
        assert mock.call_count == 2
