"""
Interactive OAuth authorization over a loopback redirect.

Opens Google's consent page in the browser and runs a throwaway Starlette
app under uvicorn on the redirect URI from the key file to catch the
authorization code. Used by ``gtasks-mcp auth`` and by the server whenever
stored credentials cannot be refreshed.
"""

import asyncio
import base64
import hashlib
import logging
import secrets
import socket
import webbrowser
from pathlib import Path
from urllib.parse import urlparse

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse
from starlette.routing import Route
from uvicorn import Config, Server

from .client_config import ClientConfigLoader
from .credentials import Credential
from .errors import AuthorizationError, RefreshError
from .oauth import OAuth2Client
from .settings import GTasksSettings

logger = logging.getLogger(__name__)

SUCCESS_PAGE = "<html><body><h1>Authentication successful</h1><p>You can close this window.</p></body></html>"
FAILURE_PAGE = "<html><body><h1>Authentication failed</h1><p>{reason}</p></body></html>"


def create_pkce_pair() -> tuple[str, str]:
    """Return a PKCE (code_verifier, code_challenge) pair using S256."""
    verifier = secrets.token_urlsafe(64)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


def create_callback_app(
    path: str, state: str, result: "asyncio.Future[str]"
) -> Starlette:
    """Starlette app that resolves ``result`` with the authorization code."""

    async def callback(request: Request) -> HTMLResponse:
        params = request.query_params

        if result.done():
            return HTMLResponse(FAILURE_PAGE.format(reason="Already handled"), status_code=409)

        if params.get("error"):
            reason = params.get("error_description") or params["error"]
            result.set_exception(AuthorizationError(f"Authorization denied: {reason}"))
            return HTMLResponse(FAILURE_PAGE.format(reason=reason), status_code=400)

        if params.get("state") != state:
            result.set_exception(AuthorizationError("OAuth state mismatch"))
            return HTMLResponse(FAILURE_PAGE.format(reason="State mismatch"), status_code=400)

        code = params.get("code")
        if not code:
            result.set_exception(AuthorizationError("No authorization code in callback"))
            return HTMLResponse(FAILURE_PAGE.format(reason="Missing code"), status_code=400)

        result.set_result(code)
        return HTMLResponse(SUCCESS_PAGE)

    return Starlette(routes=[Route(path, endpoint=callback, methods=["GET"])])


class LoopbackAuthorizer:
    """Authorization-code flow with PKCE against a local redirect."""

    def __init__(self, settings: GTasksSettings, open_browser: bool = True):
        self.settings = settings
        self.open_browser = open_browser

    async def __call__(self, keyfile_path: Path, scopes: list[str]) -> Credential:
        identity = ClientConfigLoader(keyfile_path).load()

        parsed = urlparse(identity.redirect_uri)
        host = parsed.hostname or "localhost"
        port = parsed.port or self.settings.default_auth_port
        path = parsed.path or "/"
        redirect_uri = f"{parsed.scheme or 'http'}://{host}:{port}{path}"

        client = OAuth2Client(
            identity,
            auth_uri=self.settings.auth_uri,
            token_uri=self.settings.token_uri,
            timeout=self.settings.request_timeout,
        )
        state = secrets.token_urlsafe(32)
        verifier, challenge = create_pkce_pair()
        auth_url = client.generate_auth_url(scopes, state, challenge, redirect_uri=redirect_uri)

        # Bind up front so a busy port fails fast instead of waiting out the timeout
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError as e:
            sock.close()
            raise AuthorizationError(f"Cannot listen for OAuth callback on {host}:{port}: {e}") from e

        loop = asyncio.get_running_loop()
        result: asyncio.Future[str] = loop.create_future()
        app = create_callback_app(path, state, result)
        # stdout belongs to the MCP stdio transport: no access log, no uvicorn log config
        server = Server(Config(app, log_config=None, access_log=False, log_level="warning"))
        serve_task = asyncio.create_task(server.serve(sockets=[sock]))

        logger.info(f"Waiting for OAuth callback on {redirect_uri}")
        logger.info(f"Open this URL to authorize access: {auth_url}")
        if self.open_browser:
            webbrowser.open(auth_url)

        try:
            code = await asyncio.wait_for(result, timeout=self.settings.auth_timeout)
        except asyncio.TimeoutError as e:
            raise AuthorizationError(
                f"Timed out after {self.settings.auth_timeout:.0f}s waiting for authorization"
            ) from e
        finally:
            server.should_exit = True
            await serve_task
            sock.close()

        try:
            credential = await client.exchange_code(code, verifier, redirect_uri=redirect_uri)
        except RefreshError as e:
            raise AuthorizationError(f"Authorization code exchange failed: {e}") from e

        logger.info("Obtained new credentials via interactive authorization")
        return credential
