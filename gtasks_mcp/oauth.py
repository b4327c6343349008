"""
OAuth 2.0 credential lifecycle for the Google Tasks API.

``OAuth2Client`` is the low-level piece that talks to Google's token
endpoint. ``AuthManager`` owns the one client this process uses, its
current credential, the credential store, and the interactive authorization
collaborator, and exposes the two repair operations the retry executor
relies on: ``refresh()`` and ``authorize_interactively()``.
"""

import asyncio
import logging
import weakref
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

import httpx

from .client_config import ClientConfigLoader, ClientIdentity
from .credentials import Credential, CredentialStore, merge_credentials
from .errors import NotAuthenticatedError, PersistenceError, RefreshError
from .settings import GTasksSettings

logger = logging.getLogger(__name__)

TokenListener = Callable[[Credential], None]
Authorizer = Callable[[Path, list[str]], Awaitable[Credential]]


class OAuth2Client:
    """Minimal OAuth 2.0 client for Google's authorization server."""

    def __init__(
        self,
        identity: ClientIdentity,
        *,
        auth_uri: str,
        token_uri: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.identity = identity
        self.auth_uri = auth_uri
        self.token_uri = token_uri
        self.timeout = timeout
        self.credentials: Credential | None = None
        self._http_client = http_client
        self._listeners: list[TokenListener] = []

    def set_credentials(self, credentials: Credential | None) -> None:
        self.credentials = credentials

    def on_tokens(self, listener: TokenListener) -> None:
        """Register a callback fired when the client refreshes on its own."""
        self._listeners.append(listener)

    def generate_auth_url(
        self,
        scopes: list[str],
        state: str,
        code_challenge: str,
        redirect_uri: str | None = None,
    ) -> str:
        params = {
            "client_id": self.identity.client_id,
            "redirect_uri": redirect_uri or self.identity.redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.auth_uri}?{urlencode(params)}"

    async def exchange_code(
        self, code: str, code_verifier: str, redirect_uri: str | None = None
    ) -> Credential:
        """Exchange an authorization code for a credential."""
        data = await self._post_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": code_verifier,
                "redirect_uri": redirect_uri or self.identity.redirect_uri,
                "client_id": self.identity.client_id,
                "client_secret": self.identity.client_secret,
            }
        )
        credential = Credential.from_token_response(data)
        self.credentials = credential
        return credential

    async def refresh_access_token(self) -> Credential:
        """Trade the refresh token for a new access token.

        Google usually omits ``refresh_token`` from refresh responses, so the
        returned credential keeps the current one.
        """
        current = self.credentials
        if current is None or not current.refresh_token:
            raise RefreshError("No refresh token available")

        data = await self._post_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": current.refresh_token,
                "client_id": self.identity.client_id,
                "client_secret": self.identity.client_secret,
            }
        )
        refreshed = merge_credentials(current, Credential.from_token_response(data))
        self.credentials = refreshed
        return refreshed

    async def get_access_token(self) -> str:
        """Return a usable access token, refreshing it first if it has expired."""
        credential = self.credentials
        if credential is None or not (credential.access_token or credential.refresh_token):
            raise NotAuthenticatedError()

        if not credential.access_token or (
            credential.is_expired() and credential.refresh_token
        ):
            logger.debug("Access token missing or expired, refreshing")
            credential = await self.refresh_access_token()
            for listener in self._listeners:
                listener(credential)

        if not credential.access_token:
            raise NotAuthenticatedError("Token endpoint returned no access token")
        return credential.access_token

    async def _post_token(self, form: dict[str, str]) -> dict[str, Any]:
        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.token_uri, data=form)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.token_uri, data=form)
        except httpx.HTTPError as e:
            raise RefreshError(f"Token endpoint request failed: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            error = body.get("error", "token_error") if isinstance(body, dict) else "token_error"
            description = body.get("error_description", "") if isinstance(body, dict) else ""
            message = f"{error}: {description}" if description else error
            raise RefreshError(message, http_status=response.status_code, code=error)

        try:
            data = response.json()
        except ValueError as e:
            raise RefreshError("Token endpoint returned invalid JSON") from e
        if not isinstance(data, dict) or "access_token" not in data:
            raise RefreshError("Token endpoint response has no access_token")
        return data


class AuthStatus(Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    AUTHORIZED = "authorized"
    REFRESHING = "refreshing"
    REAUTHORIZING = "reauthorizing"


class AuthManager:
    """Process-wide auth state: client identity, current credential, and repair."""

    def __init__(
        self,
        settings: GTasksSettings,
        *,
        store: CredentialStore | None = None,
        config_loader: ClientConfigLoader | None = None,
        authorizer: Authorizer | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings
        self.store = store or CredentialStore(settings.credentials_path)
        self.config_loader = config_loader or ClientConfigLoader(settings.oauth_keys_path)
        self._authorizer = authorizer
        self._http_client = http_client
        self._client: OAuth2Client | None = None
        self._listened: weakref.WeakSet[OAuth2Client] = weakref.WeakSet()
        self._lock = asyncio.Lock()
        self.status = AuthStatus.UNCONFIGURED

    @property
    def authorizer(self) -> Authorizer:
        if self._authorizer is None:
            from .local_auth import LoopbackAuthorizer

            self._authorizer = LoopbackAuthorizer(self.settings)
        return self._authorizer

    @property
    def credentials(self) -> Credential | None:
        return self._client.credentials if self._client is not None else None

    def configure(self) -> OAuth2Client:
        """Build the OAuth client on first use.

        Raises:
            ConfigurationError: If the key file is missing or malformed
        """
        if self._client is None:
            identity = self.config_loader.load()
            self._client = OAuth2Client(
                identity,
                auth_uri=self.settings.auth_uri,
                token_uri=self.settings.token_uri,
                timeout=self.settings.request_timeout,
                http_client=self._http_client,
            )
            self.status = AuthStatus.CONFIGURED
            logger.debug(f"Configured OAuth client {identity.client_id[:12]}...")
        self._attach_listener(self._client)
        return self._client

    def _attach_listener(self, client: OAuth2Client) -> None:
        if client in self._listened:
            return
        client.on_tokens(self._on_tokens)
        self._listened.add(client)

    def _on_tokens(self, credential: Credential) -> None:
        """Persist a credential the client refreshed by itself."""
        try:
            merged = self.store.save(credential)
        except PersistenceError as e:
            logger.error(f"Could not persist refreshed credentials: {e}")
            return
        if self._client is not None:
            self._client.set_credentials(merged)
        logger.info("Persisted credentials refreshed by the OAuth client")

    def load_stored_credentials(self) -> bool:
        """Adopt the stored credential, if there is one."""
        client = self.configure()
        stored = self.store.load()
        if stored is None:
            logger.warning(
                f"No stored credentials at {self.store.path}; "
                "interactive authorization will run on first use"
            )
            return False
        client.set_credentials(stored)
        self.status = AuthStatus.AUTHORIZED
        logger.info(f"Loaded credentials from {self.store.path}")
        return True

    async def authorize_interactively(self) -> Credential:
        """Run the interactive flow and adopt the resulting credential."""
        async with self._lock:
            client = self.configure()
            self.status = AuthStatus.REAUTHORIZING
            logger.info("Starting interactive authorization")
            try:
                fresh = await self.authorizer(
                    self.settings.oauth_keys_path, list(self.settings.scopes)
                )
                merged = self.store.save(fresh)
                client.set_credentials(merged)
            finally:
                self._settle(client)
        logger.info("Interactive authorization completed")
        return merged

    async def refresh(self) -> bool:
        """Refresh the access token. Returns False instead of raising on failure."""
        client = self.configure()
        current = client.credentials
        if current is None or not current.refresh_token:
            logger.info("No refresh token available, cannot refresh")
            return False

        async with self._lock:
            self.status = AuthStatus.REFRESHING
            try:
                fresh = await client.refresh_access_token()
                fresh.refresh_token = fresh.refresh_token or current.refresh_token
                merged = self.store.save(fresh)
                client.set_credentials(merged)
            except (RefreshError, PersistenceError) as e:
                logger.warning(f"Token refresh failed: {e}")
                return False
            finally:
                self._settle(client)

        logger.info("Access token refreshed")
        return True

    async def access_token(self) -> str:
        return await self.configure().get_access_token()

    def _settle(self, client: OAuth2Client) -> None:
        self.status = AuthStatus.AUTHORIZED if client.credentials else AuthStatus.CONFIGURED
