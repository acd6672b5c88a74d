"""Session commands for the kubedeck CLI."""

from __future__ import annotations

import click

from kubedeck.commands.common import CliState, console, fail, run
from kubedeck.gateway.errors import GatewayError, unwrap_response


@click.command()
@click.option("--username", "-u", prompt=True, help="Account name")
@click.option("--password", prompt=True, hide_input=True, help="Account password")
@click.option(
    "--remember/--no-remember",
    default=True,
    help="Keep the session in durable storage (otherwise it ends with this process)",
)
@click.pass_obj
def login(state: CliState, username: str, password: str, remember: bool):
    """Sign in and store the session tokens."""

    async def _login():
        async with state.runtime_factory() as runtime:
            response = await runtime.auth.login(
                {"username": username, "password": password, "remember": remember}
            )
            return unwrap_response(response)

    try:
        result = run(_login())
    except GatewayError as exc:
        fail(exc)

    if result is None:
        console.print("[yellow]Login succeeded but the server returned no session[/yellow]")
        return
    console.print(
        f"[green]Logged in as[/green] {result.user.username} "
        f"[dim](role: {result.user.role or 'none'})[/dim]"
    )


@click.command()
@click.pass_obj
def logout(state: CliState):
    """End the session and clear stored tokens."""

    async def _logout():
        async with state.runtime_factory() as runtime:
            await runtime.auth.logout()

    try:
        run(_logout())
    except GatewayError as exc:
        console.print("[dim]Local credentials were cleared.[/dim]")
        fail(exc)
    console.print("[green]Logged out[/green]")


@click.command()
@click.pass_obj
def whoami(state: CliState):
    """Show the signed-in account."""

    async def _whoami():
        async with state.runtime_factory() as runtime:
            if not runtime.auth.is_authenticated():
                return None, False
            user = unwrap_response(await runtime.auth.get_current_user())
            return user, runtime.auth.is_admin()

    try:
        user, is_admin = run(_whoami())
    except GatewayError as exc:
        fail(exc)

    if user is None:
        console.print("[yellow]Not logged in[/yellow]")
        return
    console.print(f"[bold]{user.username}[/bold] <{user.email}>")
    console.print(f"  Role: {user.role}{' (admin)' if is_admin else ''}")
    console.print(f"  Status: {user.status}")
