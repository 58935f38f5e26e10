"""Local blob storage for the cache, schema maps, offline store and session.

Each blob is a JSON document under the data directory (default: ~/.leadsheet),
keyed by a fixed storage key and written with restrictive file permissions.

Note: Session tokens are stored in plaintext and protected by file
permissions (0o600) only.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".leadsheet"

SESSION_KEY = "session"


class NoSessionError(Exception):
    """Raised when an operation needs an authenticated session and none is stored."""

    def __init__(self, message: str | None = None):
        default_msg = (
            "No active session found.\n\n"
            "Run 'leadsheet auth login --token <access-token>' to store one."
        )
        super().__init__(message or default_msg)


class BlobStorage:
    """One JSON file per storage key.

    Usage:
        storage = BlobStorage(tmp_dir)
        storage.save("leads_cache", {"timestamp": 0, "data": {}})
        blob = storage.load("leads_cache")
    """

    def __init__(self, data_dir: Path | str | None = None):
        self.data_dir = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()

    def load(self, key: str) -> Any | None:
        """Load a blob, or None when absent or unreadable."""
        path = self.path_for(key)
        if not path.exists():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not load blob %s: %s", key, e)
            return None

    def save(self, key: str, data: Any) -> None:
        path = self.path_for(key)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)

        # Set restrictive permissions
        os.chmod(path, 0o600)

    def remove(self, key: str) -> None:
        path = self.path_for(key)
        if path.exists():
            path.unlink()


@dataclass
class SessionData:
    """Authenticated session for the remote store (token obtained by the OAuth flow)."""

    access_token: str
    expires_at: int  # Unix timestamp
    email: str | None = None
    name: str | None = None

    @property
    def is_expired(self) -> bool:
        """Check if access token is expired (with 5 min buffer)."""
        return datetime.now().timestamp() > (self.expires_at - 300)

    @property
    def expires_in_seconds(self) -> int:
        return max(0, int(self.expires_at - datetime.now().timestamp()))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionData":
        return cls(**data)


class SessionStore:
    """Persists the one active session per data directory."""

    def __init__(self, storage: BlobStorage):
        self.storage = storage

    def load(self) -> SessionData | None:
        data = self.storage.load(SESSION_KEY)
        if not data:
            return None
        try:
            return SessionData.from_dict(data)
        except (KeyError, TypeError) as e:
            logger.warning("Ignoring malformed session blob: %s", e)
            return None

    def save(self, session: SessionData) -> None:
        self.storage.save(SESSION_KEY, session.to_dict())

    def clear(self) -> None:
        self.storage.remove(SESSION_KEY)

    def active(self) -> SessionData | None:
        """Return the stored session if it is still valid."""
        session = self.load()
        if session is None or session.is_expired:
            return None
        return session

    def require(self) -> SessionData:
        session = self.active()
        if session is None:
            raise NoSessionError()
        return session

    def get_status(self) -> dict[str, Any]:
        session = self.load()
        status: dict[str, Any] = {
            "data_dir": str(self.storage.data_dir),
            "session": None,
        }
        if session:
            status["session"] = {
                "valid": not session.is_expired,
                "expires_in_seconds": session.expires_in_seconds,
                "email": session.email,
            }
        return status
