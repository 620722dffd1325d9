"""
CLI configuration. URLs are resolved from the environment on every call so dev/prod
can be switched without reinstalling; defaults point at production.
No secrets in this file; API keys come from env or flags.
"""
import os
from pathlib import Path

# Web app that hosts the /cli-login page (where the browser is sent)
DEV_WEB_APP_URL = "http://localhost:3001"
PROD_WEB_APP_URL = "https://app.dosu.dev"

# Backend API consumed by the authenticated client
DEV_BACKEND_URL = "http://localhost:7001"
PROD_BACKEND_URL = "https://api.dosu.dev"

# Identity service that serves /auth/v1/token for the refresh grant
DEV_IDENTITY_URL = "http://localhost:54321"
# TODO: replace with the production identity project URL once it is provisioned
PROD_IDENTITY_URL = "https://your-project.supabase.co"

# How long the login flow waits for the browser to call back (seconds)
AUTH_TIMEOUT_SECONDS = 300

# Grace period for draining the callback listener on shutdown (seconds)
SHUTDOWN_GRACE_SECONDS = 5

# Tokens are considered expired this many seconds before their real expiry
TOKEN_EXPIRY_GRACE_SECONDS = 300

# Used when the callback omits expires_in or sends garbage
DEFAULT_EXPIRES_IN = 3600

REQUEST_TIMEOUT_SECONDS = 30.0

CONFIG_DIR_NAME = "cli-auth"
CONFIG_FILE_NAME = "config.json"


def _is_dev() -> bool:
    return os.environ.get("CLI_AUTH_DEV", "").lower() == "true"


def _resolve(override_var: str, dev_url: str, prod_url: str) -> str:
    url = os.environ.get(override_var, "").strip()
    if not url:
        url = dev_url if _is_dev() else prod_url
    return url.rstrip("/")


def get_web_app_url() -> str:
    """Web app base URL. CLI_AUTH_WEB_APP_URL wins; CLI_AUTH_DEV=true selects local dev."""
    return _resolve("CLI_AUTH_WEB_APP_URL", DEV_WEB_APP_URL, PROD_WEB_APP_URL)


def get_backend_url() -> str:
    """Backend API base URL. CLI_AUTH_BACKEND_URL wins; CLI_AUTH_DEV=true selects local dev."""
    return _resolve("CLI_AUTH_BACKEND_URL", DEV_BACKEND_URL, PROD_BACKEND_URL)


def get_identity_url() -> str:
    """Identity service base URL (token endpoint host)."""
    return _resolve("CLI_AUTH_IDENTITY_URL", DEV_IDENTITY_URL, PROD_IDENTITY_URL)


def get_api_key() -> str:
    return os.environ.get("CLI_AUTH_API_KEY", "").strip()


def get_config_path() -> Path:
    """
    Path of the persisted config document.
    CLI_AUTH_CONFIG_DIR overrides the directory (tests use it); otherwise
    $XDG_CONFIG_HOME/cli-auth, falling back to ~/.config/cli-auth.
    The directory is not created here; token_store does that on save.
    """
    override = os.environ.get("CLI_AUTH_CONFIG_DIR", "").strip()
    if override:
        return Path(override) / CONFIG_FILE_NAME
    base = os.environ.get("XDG_CONFIG_HOME", "").strip() or str(Path.home() / ".config")
    return Path(base) / CONFIG_DIR_NAME / CONFIG_FILE_NAME
