"""Loading of the OAuth client identity from a Google Cloud key file."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_REDIRECT_URI = "http://localhost"


@dataclass(frozen=True)
class ClientIdentity:
    client_id: str
    client_secret: str
    redirect_uri: str = DEFAULT_REDIRECT_URI


class ClientConfigLoader:
    """Reads the key file on first use and caches the result.

    The key file is what the Google Cloud console hands out for an OAuth
    client: either a flat object or one wrapped under ``installed`` (desktop
    apps) or ``web``.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._identity: ClientIdentity | None = None

    def load(self) -> ClientIdentity:
        if self._identity is None:
            self._identity = self._read()
        return self._identity

    def _read(self) -> ClientIdentity:
        if not self.path.exists():
            raise ConfigurationError(
                f"OAuth key file not found at {self.path}. "
                "Download it from the Google Cloud console."
            )

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Could not read OAuth key file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"OAuth key file {self.path} must contain a JSON object")

        keys = data.get("installed") or data.get("web") or data
        client_id = keys.get("client_id")
        client_secret = keys.get("client_secret")
        if not client_id or not client_secret:
            raise ConfigurationError(
                f"OAuth key file {self.path} is missing client_id or client_secret"
            )

        redirect_uris = keys.get("redirect_uris") or []
        redirect_uri = redirect_uris[0] if redirect_uris else DEFAULT_REDIRECT_URI

        logger.debug(f"Loaded OAuth client identity from {self.path}")
        return ClientIdentity(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
        )
