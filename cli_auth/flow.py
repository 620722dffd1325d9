"""
Browser login flow.
Start the callback listener, send the browser to <web app>/cli-login?callback=..., then wait for
whichever comes first: credentials, an error from the callback, or the timeout.
The listener is shut down before returning on every path.
"""
import logging
import queue
import webbrowser
from typing import Callable
from urllib.parse import urlencode

from cli_auth.callback_server import CallbackServer
from cli_auth.config import AUTH_TIMEOUT_SECONDS, get_web_app_url
from cli_auth.errors import AuthTimeoutError, BrowserLaunchError, CallbackError, PersistenceError
from cli_auth.token_store import Credentials, load_credentials, save_credentials

logger = logging.getLogger(__name__)


def build_auth_url(callback_url: str, web_app_url: str | None = None) -> str:
    """<web app>/cli-login with the local callback URL as the only query parameter."""
    base = (web_app_url or get_web_app_url()).rstrip("/")
    return f"{base}/cli-login?{urlencode({'callback': callback_url})}"


def _open_browser(url: str) -> None:
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as e:
        raise BrowserLaunchError(url) from e
    if not opened:
        raise BrowserLaunchError(url)


def start_oauth_flow(
    *,
    timeout: float = AUTH_TIMEOUT_SECONDS,
    open_browser: Callable[[str], None] = _open_browser,
    web_app_url: str | None = None,
) -> Credentials:
    """
    Run one login attempt and return fresh Credentials (not yet saved).
    Raises ListenerBindError, BrowserLaunchError, CallbackError or AuthTimeoutError.
    Every call uses a new listener and port, so it is safe to call again after a failure.
    """
    with CallbackServer() as server:
        auth_url = build_auth_url(server.callback_url, web_app_url)
        logger.debug("Opening browser for login (callback port %s)", server.port)
        open_browser(auth_url)

        try:
            result = server.results.get(timeout=timeout)
        except queue.Empty:
            raise AuthTimeoutError(timeout) from None

    if isinstance(result, CallbackError):
        raise result
    return result


def login(**flow_kwargs) -> Credentials:
    """
    Run the flow and persist the new tokens into the existing config document,
    keeping the selected deployment and any unknown keys.
    """
    try:
        creds = load_credentials()
    except PersistenceError as e:
        logger.warning("Ignoring unreadable config, starting fresh: %s", e.reason)
        creds = Credentials()
    fresh = start_oauth_flow(**flow_kwargs)
    creds.access_token = fresh.access_token
    creds.refresh_token = fresh.refresh_token
    creds.expires_at = fresh.expires_at
    save_credentials(creds)
    return creds
