"""
File-backed persistence for the single OAuth credential this server uses.

The stored record is the token bundle returned by Google's token endpoint:

    {"access_token": ..., "refresh_token": ..., "expiry_date": ...,
     "scope": ..., "token_type": ...}

Writes always go through ``merge_credentials`` so a refresh response that
omits ``refresh_token`` cannot wipe out the one already on disk.
"""

import json
import logging
import os
import stat
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import PersistenceError

logger = logging.getLogger(__name__)

# Refresh this many milliseconds before the token actually expires
EXPIRY_SKEW_MS = 60_000

_KNOWN_FIELDS = ("access_token", "refresh_token", "expiry_date", "scope", "token_type")


@dataclass
class Credential:
    """OAuth 2.0 token bundle."""

    access_token: str | None = None
    refresh_token: str | None = None
    expiry_date: int | None = None  # epoch milliseconds
    scope: str | None = None
    token_type: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Credential":
        extra = {k: v for k, v in data.items() if k not in _KNOWN_FIELDS}
        expiry = data.get("expiry_date")
        return cls(
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            expiry_date=int(expiry) if expiry is not None else None,
            scope=data.get("scope"),
            token_type=data.get("token_type"),
            extra=extra,
        )

    @classmethod
    def from_token_response(cls, data: dict[str, Any]) -> "Credential":
        """Build a credential from a raw token endpoint response."""
        payload = dict(data)
        expires_in = payload.pop("expires_in", None)
        if expires_in is not None:
            payload["expiry_date"] = int(time.time() * 1000) + int(expires_in) * 1000
        payload.pop("refresh_token_expires_in", None)
        return cls.from_dict(payload)

    def to_dict(self) -> dict[str, Any]:
        """Serialize, leaving out fields that are not set."""
        data = {k: v for k, v in self.extra.items() if v is not None}
        for name in _KNOWN_FIELDS:
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data

    def is_expired(self, now_ms: int | None = None) -> bool:
        if self.expiry_date is None:
            return False
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return self.expiry_date <= now_ms + EXPIRY_SKEW_MS


def merge_credentials(old: Credential | None, new: Credential) -> Credential:
    """Overlay ``new`` on ``old``, never dropping a known refresh token.

    Fields set on ``new`` win. Fields ``new`` leaves unset keep the old value.
    ``refresh_token`` falls back to the old one whenever ``new`` has none.
    """
    base = old.to_dict() if old is not None else {}
    merged = {**base, **new.to_dict()}

    refresh_token = new.refresh_token or base.get("refresh_token")
    if refresh_token:
        merged["refresh_token"] = refresh_token
    else:
        merged.pop("refresh_token", None)

    return Credential.from_dict(merged)


class CredentialStore:
    """Single-record credential file.

    The file is rewritten atomically and kept at mode 0600. There is no
    coordination between concurrent writers beyond the merge rule.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Credential | None:
        """Return the stored credential, or None if absent or unreadable."""
        if not self.path.exists():
            return None

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable credential file {self.path}: {e}")
            return None

        if not isinstance(data, dict) or not data.get("access_token"):
            logger.warning(f"Ignoring credential file {self.path}: no access_token found")
            return None

        try:
            return Credential.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring credential file {self.path}: malformed field: {e}")
            return None

    def save(self, candidate: Credential) -> Credential:
        """Merge ``candidate`` with the stored record, persist it, and return it."""
        merged = merge_credentials(self.load(), candidate)
        self._write(merged.to_dict())
        logger.info(f"Saved credentials to {self.path}")
        return merged

    def _write(self, data: dict[str, Any]) -> None:
        directory = self.path.parent
        tmp_path = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, stat.S_IRUSR | stat.S_IWUSR)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistenceError(f"Failed to write credentials to {self.path}: {e}") from e
