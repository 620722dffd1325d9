"""
Typed errors for the login flow, token refresh and authenticated requests.
Messages are user-facing: each one says what to do next. No tokens in messages.
"""


class CliAuthError(Exception):
    """Base class; the CLI prints str(err) and exits 1."""


# --- Login flow (fatal to one attempt; user retries) ---


class AuthFlowError(CliAuthError):
    pass


class ListenerBindError(AuthFlowError):
    def __init__(self, reason: str = ""):
        msg = "Could not start the local callback server"
        if reason:
            msg += f" ({reason})"
        super().__init__(f"{msg}. Check that localhost networking is available and try again.")


class BrowserLaunchError(AuthFlowError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(
            f"Could not open a browser. Check your default browser, or open this URL manually and try again: {url}"
        )


class AuthTimeoutError(AuthFlowError):
    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__("Authentication timed out waiting for the browser. Please try again.")


class CallbackError(AuthFlowError):
    def __init__(self, description: str):
        self.description = description
        super().__init__(f"Authentication failed: {description}. Please try again.")


# --- Refresh (fatal to one request; recoverable by logging in again) ---


class NoRefreshTokenError(CliAuthError):
    def __init__(self):
        super().__init__("Session cannot be refreshed. Run 'cli-auth login' to re-authenticate.")


class RefreshFailedError(CliAuthError):
    def __init__(self, status: int | None, reason: str = ""):
        self.status = status
        self.reason = reason
        detail = f"status {status}" if status is not None else (reason or "network error")
        super().__init__(f"Session refresh failed ({detail}). Run 'cli-auth login' to re-authenticate.")


# --- Persistence (degraded but continuable after a refresh) ---


class PersistenceError(CliAuthError):
    def __init__(self, path, reason: str, action: str = "save"):
        self.path = path
        self.reason = reason
        prep = "to" if action == "save" else "from"
        super().__init__(f"Could not {action} credentials {prep} {path}: {reason}")


# --- Requests ---


class NotAuthenticatedError(CliAuthError):
    def __init__(self, detail: str = ""):
        msg = "Not authenticated"
        if detail:
            msg += f" ({detail})"
        super().__init__(
            f"{msg}. Provide an API key via --key or CLI_AUTH_API_KEY, or run 'cli-auth login'."
        )


class ApiError(CliAuthError):
    def __init__(self, status: int, path: str, reason: str = ""):
        self.status = status
        self.path = path
        self.reason = reason
        if reason:
            super().__init__(f"Request to {path} returned an unexpected response ({reason}, status {status})")
        else:
            super().__init__(f"Request to {path} failed with status {status}")
