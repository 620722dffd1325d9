"""
Credential lifecycle: expiry checks, the refresh_token grant, and logout.
One refresh attempt per call, never retried here; callers decide whether to fall back to login.
"""
import logging

import httpx

from cli_auth.config import DEFAULT_EXPIRES_IN, REQUEST_TIMEOUT_SECONDS, get_identity_url
from cli_auth.errors import NoRefreshTokenError, RefreshFailedError
from cli_auth.token_store import Credentials, save_credentials

logger = logging.getLogger(__name__)


def is_authenticated(creds: Credentials, now: float | None = None) -> bool:
    return creds.is_authenticated(now)


def is_expiring(creds: Credentials, now: float | None = None) -> bool:
    return creds.is_expiring(now)


def clear(creds: Credentials) -> None:
    """Reset the credential fields. Logout = clear() then save_credentials()."""
    creds.clear()


def token_endpoint() -> str:
    return f"{get_identity_url()}/auth/v1/token"


def refresh(creds: Credentials) -> Credentials:
    """
    Exchange creds.refresh_token for new tokens, update creds in place and save.
    Raises NoRefreshTokenError (no network call), RefreshFailedError (creds untouched),
    or PersistenceError (creds already updated in memory, not saved).
    """
    if not creds.refresh_token:
        raise NoRefreshTokenError()

    try:
        r = httpx.post(
            token_endpoint(),
            params={"grant_type": "refresh_token"},
            json={"refresh_token": creds.refresh_token},
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    except httpx.HTTPError as e:
        logger.debug("Refresh request failed: %s", e)
        raise RefreshFailedError(None, "network error") from e

    if r.status_code != 200:
        logger.debug("Refresh rejected with status %s", r.status_code)
        raise RefreshFailedError(r.status_code)

    try:
        data = r.json()
        access_token = data["access_token"]
        refresh_token = data.get("refresh_token") or ""
        expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        logger.debug("Malformed refresh response: %s", e)
        raise RefreshFailedError(r.status_code, "malformed response") from e
    if not access_token:
        raise RefreshFailedError(r.status_code, "empty access token")

    creds.set_tokens(access_token, refresh_token, expires_in)
    logger.debug("Access token refreshed; expires at %s", creds.expires_at)
    save_credentials(creds)
    return creds


def ensure_fresh(creds: Credentials) -> Credentials:
    """Refresh only when creds is not currently authenticated."""
    if creds.is_authenticated():
        return creds
    return refresh(creds)
