"""
Command-line entry point: login, logout, status, deployments (list and select).
Errors from the auth layer are printed to stderr and exit with code 1.
"""
import logging

import httpx
import typer

from cli_auth import lifecycle
from cli_auth.client import ApiClient, resolve_api_key
from cli_auth.config import get_config_path
from cli_auth.errors import CliAuthError, PersistenceError
from cli_auth.flow import login as run_login
from cli_auth.token_store import load_credentials, save_credentials

app = typer.Typer(help="Authenticate this machine and call the API.", no_args_is_help=True)


def _fail(err: CliAuthError) -> None:
    typer.echo(f"Error: {err}", err=True)
    raise typer.Exit(code=1)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging to stderr.")):
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@app.command()
def login():
    """Open the browser to log in and save the session."""
    try:
        creds = load_credentials()
    except PersistenceError:
        creds = None
    if creds is not None and creds.is_authenticated():
        typer.echo("You are already logged in.")
        typer.echo("Run 'cli-auth logout' first to re-authenticate.")
        return

    typer.echo("Opening browser for authentication...")
    try:
        run_login()
    except CliAuthError as e:
        _fail(e)
    typer.echo("Successfully authenticated!")
    typer.echo(f"Credentials saved to {get_config_path()}")


@app.command()
def logout():
    """Clear the saved session."""
    try:
        creds = load_credentials()
    except PersistenceError:
        typer.echo("No credentials to clear.")
        return
    if not creds.access_token:
        typer.echo("You are not logged in.")
        return
    lifecycle.clear(creds)
    try:
        save_credentials(creds)
    except PersistenceError as e:
        _fail(e)
    typer.echo("Successfully logged out.")


@app.command()
def status():
    """Show login state and the selected deployment."""
    try:
        creds = load_credentials()
    except PersistenceError:
        typer.echo("Status: Not logged in")
        typer.echo("Run 'cli-auth login' to authenticate.")
        return

    if creds.is_expiring():
        try:
            lifecycle.ensure_fresh(creds)
        except PersistenceError as e:
            typer.echo(f"Warning: {e}", err=True)
        except CliAuthError:
            typer.echo("Status: Token expired")
            typer.echo("Run 'cli-auth login' to re-authenticate.")
            return

    if not creds.is_authenticated():
        typer.echo("Status: Not logged in")
        typer.echo("Run 'cli-auth login' to authenticate.")
        return

    typer.echo("Status: Logged in")
    if creds.deployment_id:
        typer.echo(f"Deployment: {creds.deployment_name}")
        typer.echo(f"Deployment ID: {creds.deployment_id}")
    else:
        typer.echo("Deployment: None selected")
        typer.echo("Run 'cli-auth deployments --select <id>' to choose one.")


@app.command()
def deployments(
    key: str = typer.Option("", "--key", help="API key (overrides CLI_AUTH_API_KEY and the session)."),
    select: str = typer.Option("", "--select", help="Deployment ID to save as the selected deployment."),
):
    """List deployments available to the current identity, or select one with --select."""
    api_key = resolve_api_key(key)
    creds = None
    if select or not api_key:
        try:
            creds = load_credentials()
        except PersistenceError as e:
            _fail(e)

    try:
        with ApiClient(credentials=creds, api_key=api_key) as client:
            items = client.get_deployments()
    except CliAuthError as e:
        _fail(e)
    except httpx.HTTPError as e:
        typer.echo(f"Error: request failed: {e}", err=True)
        raise typer.Exit(code=1)

    if select:
        chosen = next((d for d in items if d.deployment_id == select), None)
        if chosen is None:
            typer.echo(f"Error: no deployment with ID '{select}'. Run 'cli-auth deployments' to list them.", err=True)
            raise typer.Exit(code=1)
        creds.deployment_id = chosen.deployment_id
        creds.deployment_name = chosen.name
        try:
            save_credentials(creds)
        except PersistenceError as e:
            _fail(e)
        typer.echo(f"Selected deployment: {chosen.name} ({chosen.deployment_id})")
        return

    if not items:
        typer.echo("No deployments found.")
        return
    for d in items:
        state = "enabled" if d.enabled else "disabled"
        marker = "*" if creds is not None and d.deployment_id == creds.deployment_id else " "
        typer.echo(f"{marker} {d.deployment_id}  {d.name}  ({d.org_name}, {state})")


if __name__ == "__main__":
    app()
