"""Authentication CLI commands."""

import typer

from metroai.cli_commands.common import output
from metroai.config import get_settings
from metroai.sync.auth import TokenFileAuth

auth_app = typer.Typer(
    name="auth",
    help="Authentication - store or clear the API access token.",
    no_args_is_help=True,
)


def _auth() -> TokenFileAuth:
    return TokenFileAuth(get_settings().token_path)


@auth_app.command()
def login(
    token: str = typer.Option(
        ...,
        "--token",
        "-t",
        prompt=True,
        hide_input=True,
        help="Access token issued by the server",
    ),
) -> None:
    """Store an access token for uploads."""
    try:
        _auth().save_token(token)
    except ValueError as e:
        typer.echo(str(e))
        raise typer.Exit(1)
    typer.echo("Token saved.")


@auth_app.command()
def logout() -> None:
    """Clear the stored access token."""
    _auth().clear_session()
    typer.echo("Signed out.")


@auth_app.command()
def status(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show whether an access token is stored."""
    authenticated = _auth().is_authenticated
    output(
        {"authenticated": authenticated},
        output_json,
        ["Signed in." if authenticated else "Not signed in."],
    )
