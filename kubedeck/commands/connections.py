"""Cluster connection commands for the kubedeck CLI."""

from __future__ import annotations

from pathlib import Path

import click
from rich.table import Table

from kubedeck.commands.common import CliState, console, fail, run
from kubedeck.gateway.errors import GatewayError


@click.group()
def connections():
    """Manage configured cluster connections."""


@connections.command(name="list")
@click.pass_obj
def list_connections(state: CliState):
    """List configured connections."""

    async def _list():
        async with state.runtime_factory() as runtime:
            return runtime.store.load_connections()

    items = run(_list())
    if not items:
        console.print("[yellow]No connections configured[/yellow]")
        return

    table = Table(title="Connections")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Endpoint")
    table.add_column("Auth")
    table.add_column("Namespace")
    table.add_column("Active")
    for item in items:
        table.add_row(
            item.id,
            item.name,
            item.endpoint,
            item.auth_mode,
            item.default_namespace,
            "[green]yes[/green]" if item.is_active else "",
        )
    console.print(table)


@connections.command()
@click.argument("name")
@click.argument("endpoint")
@click.option(
    "--auth-mode",
    type=click.Choice(["kubeconfig", "token"]),
    default="token",
    help="How the cluster authenticates this connection",
)
@click.option("--token", default=None, help="Bearer token (token auth mode)")
@click.option(
    "--kubeconfig",
    "kubeconfig_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Kubeconfig file (kubeconfig auth mode)",
)
@click.option("--namespace", "-n", default=None, help="Default namespace")
@click.option("--activate", is_flag=True, help="Make the new connection active")
@click.pass_obj
def add(
    state: CliState,
    name: str,
    endpoint: str,
    auth_mode: str,
    token: str | None,
    kubeconfig_path: Path | None,
    namespace: str | None,
    activate: bool,
):
    """Add a cluster connection."""
    if auth_mode == "kubeconfig":
        credential = kubeconfig_path.read_text(encoding="utf-8") if kubeconfig_path else ""
    else:
        credential = token or ""

    async def _add():
        async with state.runtime_factory() as runtime:
            connection = runtime.store.create_connection(
                {
                    "name": name,
                    "endpoint": endpoint,
                    "auth_mode": auth_mode,
                    "credential_payload": credential,
                    "default_namespace": namespace,
                }
            )
            if activate:
                connection = runtime.store.activate_connection(connection.id)
            return connection

    try:
        connection = run(_add())
    except GatewayError as exc:
        fail(exc)

    suffix = " [green](active)[/green]" if connection.is_active else ""
    console.print(f"[green]Added connection:[/green] {connection.name} [dim]{connection.id}[/dim]{suffix}")


@connections.command()
@click.argument("connection_id")
@click.pass_obj
def activate(state: CliState, connection_id: str):
    """Make a connection the active one."""

    async def _activate():
        async with state.runtime_factory() as runtime:
            return runtime.store.activate_connection(connection_id)

    try:
        connection = run(_activate())
    except GatewayError as exc:
        fail(exc)
    console.print(f"[green]Active connection:[/green] {connection.name}")


@connections.command()
@click.argument("connection_id")
@click.pass_obj
def remove(state: CliState, connection_id: str):
    """Delete a connection."""

    async def _remove():
        async with state.runtime_factory() as runtime:
            runtime.store.delete_connection(connection_id)

    try:
        run(_remove())
    except GatewayError as exc:
        fail(exc)
    console.print(f"[green]Removed connection[/green] {connection_id}")


@connections.command()
@click.argument("connection_id")
@click.pass_obj
def test(state: CliState, connection_id: str):
    """Probe a stored connection through the backend."""

    async def _test():
        async with state.runtime_factory() as runtime:
            connection = runtime.registry.get(connection_id)
            await runtime.store.test_connection(connection)
            return connection

    try:
        connection = run(_test())
    except GatewayError as exc:
        fail(exc)
    console.print(f"[green]Connection reachable:[/green] {connection.name}")


@connections.command(name="export")
@click.argument("target", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_obj
def export_connections(state: CliState, target: Path):
    """Write all connections to a JSON file."""

    async def _export():
        async with state.runtime_factory() as runtime:
            return runtime.store.export_connections()

    target.write_text(run(_export()), encoding="utf-8")
    console.print(f"[green]Exported connections to[/green] {target}")


@connections.command(name="import")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def import_connections(state: CliState, source: Path):
    """Import connections from a JSON file (imported entries start inactive)."""
    blob = source.read_text(encoding="utf-8")

    async def _import():
        async with state.runtime_factory() as runtime:
            return runtime.store.import_connections(blob)

    try:
        imported = run(_import())
    except GatewayError as exc:
        fail(exc)
    console.print(f"[green]Imported {len(imported)} connection(s)[/green]")
