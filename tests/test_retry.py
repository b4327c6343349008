"""Unit tests for AuthRetryExecutor."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from gtasks_mcp.credentials import Credential, CredentialStore
from gtasks_mcp.errors import AuthorizationError, TasksApiError
from gtasks_mcp.oauth import AuthManager
from gtasks_mcp.retry import AuthRetryExecutor
from gtasks_mcp.settings import GTasksSettings


def unauthorized() -> TasksApiError:
    return TasksApiError("Request had invalid authentication credentials.", http_status=401)


class TestAuthRetryExecutor:
    @pytest.mark.asyncio
    async def test_success_needs_no_repair(
        self, executor: AuthRetryExecutor, mock_auth: MagicMock
    ) -> None:
        operation = AsyncMock(return_value="ok")

        assert await executor.run(operation) == "ok"
        operation.assert_awaited_once()
        mock_auth.refresh.assert_not_awaited()
        mock_auth.authorize_interactively.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_auth_error_propagates_immediately(
        self, executor: AuthRetryExecutor, mock_auth: MagicMock
    ) -> None:
        operation = AsyncMock(side_effect=TasksApiError("Backend Error", http_status=500))

        with pytest.raises(TasksApiError, match="Backend Error"):
            await executor.run(operation)

        assert operation.await_count == 1
        mock_auth.refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refresh_then_retry(
        self, executor: AuthRetryExecutor, mock_auth: MagicMock
    ) -> None:
        operation = AsyncMock(side_effect=[unauthorized(), "ok"])

        assert await executor.run(operation) == "ok"
        assert operation.await_count == 2
        mock_auth.refresh.assert_awaited_once()
        mock_auth.authorize_interactively.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_refresh_falls_back_to_interactive(
        self, executor: AuthRetryExecutor, mock_auth: MagicMock
    ) -> None:
        mock_auth.refresh.return_value = False
        operation = AsyncMock(side_effect=[unauthorized(), "ok"])

        assert await executor.run(operation) == "ok"
        mock_auth.refresh.assert_awaited_once()
        mock_auth.authorize_interactively.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_at_most_once(
        self, executor: AuthRetryExecutor, mock_auth: MagicMock
    ) -> None:
        operation = AsyncMock(side_effect=unauthorized())

        with pytest.raises(TasksApiError):
            await executor.run(operation)

        assert operation.await_count == 2
        mock_auth.refresh.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_interactive_failure_propagates(
        self, executor: AuthRetryExecutor, mock_auth: MagicMock
    ) -> None:
        mock_auth.refresh.return_value = False
        mock_auth.authorize_interactively.side_effect = AuthorizationError("denied")
        operation = AsyncMock(side_effect=unauthorized())

        with pytest.raises(AuthorizationError):
            await executor.run(operation)
        assert operation.await_count == 1


class TestRetryWithAuthManager:
    """End-to-end repair through a real AuthManager and credential store."""

    @pytest.mark.asyncio
    async def test_expired_access_token_with_refresh_token(
        self, settings: GTasksSettings, store: CredentialStore, authorizer: AsyncMock
    ) -> None:
        store.save(Credential(access_token="a1", refresh_token="r1"))
        manager = AuthManager(settings, store=store, authorizer=authorizer)
        manager.load_stored_credentials()

        async def fake_refresh() -> Credential:
            refreshed = Credential(access_token="a2", refresh_token="r1")
            manager.configure().set_credentials(refreshed)
            return refreshed

        manager.configure().refresh_access_token = fake_refresh  # type: ignore[method-assign]

        seen_tokens: list[str] = []

        async def operation() -> str:
            token = manager.credentials.access_token if manager.credentials else None
            seen_tokens.append(token or "")
            if token == "a1":
                raise unauthorized()
            return "ok"

        assert await AuthRetryExecutor(manager).run(operation) == "ok"

        assert seen_tokens == ["a1", "a2"]
        authorizer.assert_not_awaited()
        stored = store.load()
        assert stored is not None
        assert stored.access_token == "a2"
        assert stored.refresh_token == "r1"

    @pytest.mark.asyncio
    async def test_no_refresh_token_goes_interactive(
        self, settings: GTasksSettings, store: CredentialStore, authorizer: AsyncMock
    ) -> None:
        store.save(Credential(access_token="a1"))
        manager = AuthManager(settings, store=store, authorizer=authorizer)
        manager.load_stored_credentials()
        calls = 0

        async def operation() -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise unauthorized()
            return "ok"

        assert await AuthRetryExecutor(manager).run(operation) == "ok"

        authorizer.assert_awaited_once()
        stored = store.load()
        assert stored is not None
        assert stored.access_token == "interactive-access"
        assert stored.refresh_token == "interactive-refresh"
