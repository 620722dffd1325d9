"""
Credential record and its on-disk config document.
Stores access_token, refresh_token, expires_at (epoch seconds) plus the selected deployment.
Unknown keys in the document are kept and written back untouched.
The file is written whole each time with owner-only permissions (0600).
"""
import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cli_auth.config import TOKEN_EXPIRY_GRACE_SECONDS, get_config_path
from cli_auth.errors import PersistenceError

logger = logging.getLogger(__name__)

_KNOWN_KEYS = ("access_token", "refresh_token", "expires_at", "deployment_id", "deployment_name")


@dataclass
class Credentials:
    access_token: str = ""
    refresh_token: str = ""
    expires_at: int = 0
    deployment_id: str = ""
    deployment_name: str = ""
    extra: dict[str, Any] = field(default_factory=dict, repr=False)

    def is_authenticated(self, now: float | None = None) -> bool:
        """
        True if there is an access token and it is not within the grace window of expiry.
        expires_at == 0 means no known expiry: only the token itself is required.
        """
        if not self.access_token:
            return False
        if self.expires_at == 0:
            return True
        if now is None:
            now = time.time()
        return now < self.expires_at - TOKEN_EXPIRY_GRACE_SECONDS

    def is_expiring(self, now: float | None = None) -> bool:
        """Token present but expired or about to be: needs a refresh, not a full login."""
        return bool(self.access_token) and not self.is_authenticated(now)

    def clear(self) -> None:
        """Drop the credential (logout). Deployment selection and unknown keys stay. Does not save."""
        self.access_token = ""
        self.refresh_token = ""
        self.expires_at = 0

    def set_tokens(self, access_token: str, refresh_token: str, expires_in: int) -> None:
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.expires_at = int(time.time()) + int(expires_in)

    def to_document(self) -> dict[str, Any]:
        doc = dict(self.extra)
        doc["access_token"] = self.access_token
        doc["refresh_token"] = self.refresh_token
        doc["expires_at"] = self.expires_at
        # deployment fields are omitted when empty
        if self.deployment_id:
            doc["deployment_id"] = self.deployment_id
        else:
            doc.pop("deployment_id", None)
        if self.deployment_name:
            doc["deployment_name"] = self.deployment_name
        else:
            doc.pop("deployment_name", None)
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Credentials":
        try:
            expires_at = int(doc.get("expires_at") or 0)
        except (TypeError, ValueError):
            # unreadable expiry: treat as long expired so a refresh or login is forced
            expires_at = 1
        return cls(
            access_token=str(doc.get("access_token") or ""),
            refresh_token=str(doc.get("refresh_token") or ""),
            expires_at=expires_at,
            deployment_id=str(doc.get("deployment_id") or ""),
            deployment_name=str(doc.get("deployment_name") or ""),
            extra={k: v for k, v in doc.items() if k not in _KNOWN_KEYS},
        )


def load_credentials(path: Path | None = None) -> Credentials:
    """Load the config document. Missing file -> empty Credentials. Unreadable/invalid -> PersistenceError."""
    path = path or get_config_path()
    if not path.exists():
        return Credentials()
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PersistenceError(path, str(e), action="read") from e
    if not raw.strip():
        return Credentials()
    try:
        doc = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PersistenceError(path, f"invalid JSON: {e}", action="read") from e
    if not isinstance(doc, dict):
        raise PersistenceError(path, "expected a JSON object", action="read")
    return Credentials.from_document(doc)


def save_credentials(creds: Credentials, path: Path | None = None) -> Path:
    """
    Overwrite the config document. Directory is created 0700, file is 0600.
    Returns the path written. Raises PersistenceError on any OS failure.
    """
    path = path or get_config_path()
    data = json.dumps(creds.to_document(), indent=2)
    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        # O_CREAT mode is ignored for an existing file
        os.chmod(path, 0o600)
    except OSError as e:
        raise PersistenceError(path, str(e)) from e
    logger.debug("Saved credentials to %s", path)
    return path
