"""Unit tests for the loopback authorization helpers."""

import asyncio
import base64
import hashlib
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from gtasks_mcp.errors import AuthorizationError, ConfigurationError
from gtasks_mcp.local_auth import LoopbackAuthorizer, create_callback_app, create_pkce_pair
from gtasks_mcp.settings import GTasksSettings


class TestPkce:
    def test_challenge_is_s256_of_verifier(self) -> None:
        verifier, challenge = create_pkce_pair()

        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        expected = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
        assert challenge == expected
        assert "=" not in challenge
        assert 43 <= len(verifier) <= 128

    def test_pairs_are_unique(self) -> None:
        assert create_pkce_pair()[0] != create_pkce_pair()[0]


async def hit_callback(query: dict[str, str]) -> tuple[httpx.Response, "asyncio.Future[str]"]:
    result: asyncio.Future[str] = asyncio.get_running_loop().create_future()
    app = create_callback_app("/oauth2callback", "expected-state", result)
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://localhost:3000"
    ) as client:
        response = await client.get("/oauth2callback", params=query)
    return response, result


class TestCallbackApp:
    @pytest.mark.asyncio
    async def test_success(self) -> None:
        response, result = await hit_callback({"code": "auth-code", "state": "expected-state"})

        assert response.status_code == 200
        assert "Authentication successful" in response.text
        assert result.result() == "auth-code"

    @pytest.mark.asyncio
    async def test_state_mismatch(self) -> None:
        response, result = await hit_callback({"code": "auth-code", "state": "forged"})

        assert response.status_code == 400
        with pytest.raises(AuthorizationError, match="state mismatch"):
            result.result()

    @pytest.mark.asyncio
    async def test_access_denied(self) -> None:
        response, result = await hit_callback({"error": "access_denied", "state": "expected-state"})

        assert response.status_code == 400
        with pytest.raises(AuthorizationError, match="access_denied"):
            result.result()

    @pytest.mark.asyncio
    async def test_missing_code(self) -> None:
        response, result = await hit_callback({"state": "expected-state"})

        assert response.status_code == 400
        with pytest.raises(AuthorizationError):
            result.result()

    @pytest.mark.asyncio
    async def test_second_callback_is_rejected(self) -> None:
        result: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        app = create_callback_app("/cb", "s", result)
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://localhost"
        ) as client:
            first = await client.get("/cb", params={"code": "c1", "state": "s"})
            second = await client.get("/cb", params={"code": "c2", "state": "s"})

        assert first.status_code == 200
        assert second.status_code == 409
        assert result.result() == "c1"


class TestLoopbackAuthorizer:
    @pytest.mark.asyncio
    async def test_missing_key_file(self, settings: GTasksSettings, tmp_path: Path) -> None:
        authorizer = LoopbackAuthorizer(settings, open_browser=False)
        with pytest.raises(ConfigurationError):
            await authorizer(tmp_path / "missing.json", settings.scopes)

    @pytest.mark.asyncio
    async def test_port_in_use(self, settings: GTasksSettings) -> None:
        authorizer = LoopbackAuthorizer(settings, open_browser=False)

        with patch("gtasks_mcp.local_auth.socket") as socket_module:
            socket_module.socket.return_value.bind.side_effect = OSError("Address already in use")
            with pytest.raises(AuthorizationError, match="Cannot listen"):
                await authorizer(settings.oauth_keys_path, settings.scopes)

        socket_module.socket.return_value.close.assert_called_once()
