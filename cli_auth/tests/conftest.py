"""
Pytest configuration for cli_auth. Every test gets its own config directory so nothing
touches the real ~/.config, and the service URLs point at unroutable test hosts.
"""
import pytest

_ENV_VARS = (
    "CLI_AUTH_DEV",
    "CLI_AUTH_API_KEY",
    "CLI_AUTH_WEB_APP_URL",
    "CLI_AUTH_BACKEND_URL",
    "CLI_AUTH_IDENTITY_URL",
    "XDG_CONFIG_HOME",
    # loopback requests to the callback server must not go through a proxy
    "HTTP_PROXY",
    "HTTPS_PROXY",
    "ALL_PROXY",
    "http_proxy",
    "https_proxy",
    "all_proxy",
)


@pytest.fixture(autouse=True)
def config_path(tmp_path, monkeypatch):
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    config_dir = tmp_path / "config"
    monkeypatch.setenv("CLI_AUTH_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("CLI_AUTH_WEB_APP_URL", "http://app.test")
    monkeypatch.setenv("CLI_AUTH_BACKEND_URL", "http://api.test")
    monkeypatch.setenv("CLI_AUTH_IDENTITY_URL", "http://identity.test")
    return config_dir / "config.json"
