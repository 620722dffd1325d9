"""
Authenticated HTTP client for the backend API.
API-key mode sends X-API-Key as-is. Session mode sends the access token and refreshes it
once before the request when it is expired or close to it; a stale token is never sent.
API key wins when both are configured.
"""
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from cli_auth import lifecycle
from cli_auth.config import REQUEST_TIMEOUT_SECONDS, get_api_key, get_backend_url
from cli_auth.errors import (
    ApiError,
    NoRefreshTokenError,
    NotAuthenticatedError,
    PersistenceError,
    RefreshFailedError,
)
from cli_auth.token_store import Credentials

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
SESSION_HEADER = "Supabase-Access-Token"

MODE_API_KEY = "api_key"
MODE_SESSION = "session"


def resolve_api_key(flag_value: str | None = None) -> str:
    """--key flag first, then CLI_AUTH_API_KEY."""
    if flag_value:
        return flag_value.strip()
    return get_api_key()


@dataclass
class Deployment:
    deployment_id: str
    name: str
    description: str = ""
    provider_slug: str = ""
    enabled: bool = False
    org_id: str = ""
    org_name: str = ""
    space_id: str = ""

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Deployment":
        return cls(
            deployment_id=data.get("deployment_id", ""),
            name=data.get("name", ""),
            description=data.get("description") or "",
            provider_slug=data.get("provider_slug") or "",
            enabled=bool(data.get("enabled", False)),
            org_id=data.get("org_id") or "",
            org_name=data.get("org_name") or "",
            space_id=data.get("space_id") or "",
        )


class ApiClient:
    def __init__(
        self,
        credentials: Credentials | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.credentials = credentials
        self.api_key = api_key or ""
        self.base_url = (base_url or get_backend_url()).rstrip("/")
        self._http = httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS, transport=transport)

    @property
    def mode(self) -> str | None:
        if self.api_key:
            return MODE_API_KEY
        if self.credentials is not None:
            return MODE_SESSION
        return None

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _auth_headers(self) -> dict[str, str]:
        if self.mode == MODE_API_KEY:
            return {API_KEY_HEADER: self.api_key}
        if self.mode is None:
            raise NotAuthenticatedError("no API key or session")

        creds = self.credentials
        try:
            lifecycle.ensure_fresh(creds)
        except NoRefreshTokenError as e:
            raise NotAuthenticatedError("no session that can be refreshed") from e
        except RefreshFailedError as e:
            raise NotAuthenticatedError("session expired and refresh failed") from e
        except PersistenceError as e:
            # refreshed in memory; go ahead with this request
            logger.warning("Refreshed token could not be saved: %s", e.reason)
        return {SESSION_HEADER: creds.access_token}

    def request(self, method: str, path: str, json: Any = None) -> httpx.Response:
        """Send an authenticated request to base_url + path. JSON body when json is not None."""
        headers = {"Content-Type": "application/json"}
        headers.update(self._auth_headers())
        return self._http.request(method, f"{self.base_url}{path}", json=json, headers=headers)

    def get(self, path: str) -> httpx.Response:
        return self.request("GET", path)

    def post(self, path: str, body: Any = None) -> httpx.Response:
        return self.request("POST", path, json=body)

    def put(self, path: str, body: Any = None) -> httpx.Response:
        return self.request("PUT", path, json=body)

    def delete(self, path: str) -> httpx.Response:
        return self.request("DELETE", path)

    def get_deployments(self) -> list[Deployment]:
        path = "/v1/mcp/deployments"
        r = self.get(path)
        if r.status_code != 200:
            raise ApiError(r.status_code, path)
        try:
            data = r.json()
            if not isinstance(data, list):
                raise TypeError(f"expected a list, got {type(data).__name__}")
            return [Deployment.from_json(d) for d in data]
        except (ValueError, TypeError, AttributeError) as e:
            logger.debug("Malformed deployments response: %s", e)
            raise ApiError(r.status_code, path, "malformed response") from e

