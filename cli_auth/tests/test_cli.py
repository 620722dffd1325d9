"""Tests for the command-line surface."""
import time
from unittest.mock import patch

from typer.testing import CliRunner

from cli_auth.cli import app
from cli_auth.client import Deployment
from cli_auth.errors import ApiError, AuthTimeoutError
from cli_auth.token_store import Credentials, load_credentials, save_credentials

runner = CliRunner()
NOW = int(time.time())


class MockRefresh401:
    status_code = 401
    headers = {}

    def json(self):
        return {}


def test_status_not_logged_in():
    """No config file: status says not logged in."""
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "Not logged in" in result.output


def test_status_logged_in_with_deployment():
    """Logged-in status names the selected deployment."""
    save_credentials(
        Credentials(access_token="at", expires_at=NOW + 3600, deployment_id="d1", deployment_name="Docs")
    )
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "Logged in" in result.output
    assert "Docs" in result.output


def test_status_expired_and_refresh_rejected():
    """Expired session whose refresh is rejected reports an expired token."""
    save_credentials(Credentials(access_token="at", refresh_token="rt", expires_at=NOW - 10))
    with patch("cli_auth.lifecycle.httpx.post", return_value=MockRefresh401()):
        result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "Token expired" in result.output


def test_login_when_already_logged_in_does_not_open_browser():
    """A valid session short-circuits login."""
    save_credentials(Credentials(access_token="at", expires_at=NOW + 3600))
    with patch("cli_auth.cli.run_login") as mock_login:
        result = runner.invoke(app, ["login"])
    assert result.exit_code == 0
    assert "already logged in" in result.output
    mock_login.assert_not_called()


def test_login_success(config_path):
    """Successful login reports where the credentials went."""
    with patch("cli_auth.cli.run_login") as mock_login:
        result = runner.invoke(app, ["login"])
    assert result.exit_code == 0
    mock_login.assert_called_once()
    assert "Successfully authenticated" in result.output
    assert str(config_path) in result.output


def test_login_timeout_exits_nonzero():
    """Flow errors print an actionable message and exit 1."""
    with patch("cli_auth.cli.run_login", side_effect=AuthTimeoutError(300)):
        result = runner.invoke(app, ["login"])
    assert result.exit_code == 1
    assert "try again" in result.output


def test_logout_clears_and_saves():
    """Logout saves the cleared tokens and keeps the deployment selection."""
    save_credentials(Credentials(access_token="at", refresh_token="rt", expires_at=NOW + 3600, deployment_id="d1"))
    result = runner.invoke(app, ["logout"])
    assert result.exit_code == 0
    assert "logged out" in result.output
    stored = load_credentials()
    assert (stored.access_token, stored.refresh_token, stored.expires_at) == ("", "", 0)
    assert stored.deployment_id == "d1"


def test_logout_when_not_logged_in():
    """Logout without a session is not an error."""
    result = runner.invoke(app, ["logout"])
    assert result.exit_code == 0
    assert "not logged in" in result.output


def test_deployments_with_key_flag():
    """--key lists deployments without a session."""
    items = [Deployment(deployment_id="d1", name="Docs", org_name="Acme", enabled=True)]
    with patch("cli_auth.client.ApiClient.get_deployments", return_value=items):
        result = runner.invoke(app, ["deployments", "--key", "k"])
    assert result.exit_code == 0
    assert "d1" in result.output
    assert "Acme" in result.output


def test_deployments_without_any_auth_fails():
    """No key and no session: a clean error instead of a request."""
    result = runner.invoke(app, ["deployments"])
    assert result.exit_code == 1
    assert "Not authenticated" in result.output


def test_deployments_malformed_response_exits_cleanly():
    """A garbled deployments response is reported as an error, not a traceback."""
    with patch(
        "cli_auth.client.ApiClient.get_deployments",
        side_effect=ApiError(200, "/v1/mcp/deployments", "malformed response"),
    ):
        result = runner.invoke(app, ["deployments", "--key", "k"])
    assert result.exit_code == 1
    assert "unexpected response" in result.output
    assert "Traceback" not in result.output


def test_select_deployment_saves_it_and_status_shows_it():
    """--select stores the chosen deployment; status and the list then show it."""
    save_credentials(Credentials(access_token="at", refresh_token="rt", expires_at=NOW + 3600))
    items = [
        Deployment(deployment_id="d1", name="Docs", org_name="Acme", enabled=True),
        Deployment(deployment_id="d2", name="Support", org_name="Acme"),
    ]
    with patch("cli_auth.client.ApiClient.get_deployments", return_value=items):
        result = runner.invoke(app, ["deployments", "--select", "d2"])
        assert result.exit_code == 0
        assert "Selected deployment: Support (d2)" in result.output

        stored = load_credentials()
        assert (stored.deployment_id, stored.deployment_name) == ("d2", "Support")
        assert stored.access_token == "at"

        listing = runner.invoke(app, ["deployments"])
    assert "* d2" in listing.output
    assert "* d1" not in listing.output

    status = runner.invoke(app, ["status"])
    assert status.exit_code == 0
    assert "Deployment: Support" in status.output
    assert "Deployment ID: d2" in status.output


def test_select_with_api_key_saves_to_config():
    """Selection works with an API key too; the session tokens are left alone."""
    items = [Deployment(deployment_id="d1", name="Docs")]
    with patch("cli_auth.client.ApiClient.get_deployments", return_value=items):
        result = runner.invoke(app, ["deployments", "--key", "k", "--select", "d1"])
    assert result.exit_code == 0
    stored = load_credentials()
    assert stored.deployment_id == "d1"
    assert stored.access_token == ""


def test_select_unknown_deployment_exits_nonzero():
    """Unknown ID exits 1 and keeps the previous selection."""
    save_credentials(Credentials(access_token="at", expires_at=NOW + 3600, deployment_id="d1", deployment_name="Docs"))
    items = [Deployment(deployment_id="d1", name="Docs")]
    with patch("cli_auth.client.ApiClient.get_deployments", return_value=items):
        result = runner.invoke(app, ["deployments", "--select", "nope"])
    assert result.exit_code == 1
    assert "no deployment with ID 'nope'" in result.output
    assert load_credentials().deployment_id == "d1"
