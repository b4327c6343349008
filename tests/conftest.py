"""Pytest configuration and fixtures for tests."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from gtasks_mcp.credentials import Credential, CredentialStore
from gtasks_mcp.retry import AuthRetryExecutor
from gtasks_mcp.settings import GTasksSettings

TEST_CLIENT_ID = "test-client-id.apps.googleusercontent.com"
TEST_CLIENT_SECRET = "test-client-secret"


@pytest.fixture
def keys_file(tmp_path: Path) -> Path:
    """Write an ``installed``-style OAuth key file."""
    path = tmp_path / "gcp-oauth.keys.json"
    path.write_text(
        json.dumps(
            {
                "installed": {
                    "client_id": TEST_CLIENT_ID,
                    "client_secret": TEST_CLIENT_SECRET,
                    "redirect_uris": ["http://localhost:3000/oauth2callback"],
                }
            }
        )
    )
    return path


@pytest.fixture
def settings(tmp_path: Path, keys_file: Path) -> GTasksSettings:
    return GTasksSettings(
        credentials_path=tmp_path / "credentials.json",
        oauth_keys_path=keys_file,
    )


@pytest.fixture
def store(settings: GTasksSettings) -> CredentialStore:
    return CredentialStore(settings.credentials_path)


@pytest.fixture
def interactive_credential() -> Credential:
    return Credential(
        access_token="interactive-access",
        refresh_token="interactive-refresh",
        expiry_date=9_999_999_999_999,
        scope="https://www.googleapis.com/auth/tasks",
        token_type="Bearer",
    )


@pytest.fixture
def authorizer(interactive_credential: Credential) -> AsyncMock:
    """Stand-in for the browser flow."""
    return AsyncMock(return_value=interactive_credential)


@pytest.fixture
def mock_auth() -> MagicMock:
    """AuthManager double whose repair operations succeed by default."""
    auth = MagicMock()
    auth.refresh = AsyncMock(return_value=True)
    auth.authorize_interactively = AsyncMock()
    return auth


@pytest.fixture
def executor(mock_auth: MagicMock) -> AuthRetryExecutor:
    return AuthRetryExecutor(mock_auth)
