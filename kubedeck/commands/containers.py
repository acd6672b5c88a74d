"""Container commands for the kubedeck CLI."""

from __future__ import annotations

import click
from rich.table import Table

from kubedeck.commands.common import CliState, console, fail, run
from kubedeck.gateway.errors import GatewayError
from kubedeck.models.container_contracts import CONTAINER_ACTIONS

_STATUS_STYLES = {
    "Running": "green",
    "Pending": "yellow",
    "Failed": "red",
    "Succeeded": "cyan",
    "Unknown": "dim",
}


@click.group()
def containers():
    """Inspect and operate containers."""


@containers.command(name="list")
@click.option("--namespace", "-n", default=None, help="Namespace to list")
@click.option("--status", "-s", default=None, help="Only containers in this status")
@click.option("--search", default=None, help="Free-text search")
@click.option("--page", type=int, default=1, show_default=True)
@click.option("--page-size", type=int, default=None)
@click.pass_obj
def list_containers(
    state: CliState,
    namespace: str | None,
    status: str | None,
    search: str | None,
    page: int,
    page_size: int | None,
):
    """List containers with filters and pagination."""

    async def _list():
        async with state.runtime_factory() as runtime:
            store = runtime.store
            changes = {"status": status, "search": search}
            if namespace:
                changes["namespace"] = namespace
            await store.set_filter(**changes)
            if page != 1 or page_size is not None:
                await store.set_page(page, page_size)
            return store.state.containers

    try:
        slice_ = run(_list())
    except GatewayError as exc:
        fail(exc)

    if slice_.status == "errored":
        console.print(f"[red]Error: {slice_.error}[/red]")
        raise click.exceptions.Exit(1)

    items = slice_.ordered()
    if not items:
        console.print(f"[yellow]No containers in namespace {slice_.filter.namespace}[/yellow]")
        return

    table = Table(title=f"Containers ({slice_.filter.namespace})")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Image")
    table.add_column("Status")
    table.add_column("Restarts", justify="right")
    for item in items:
        style = _STATUS_STYLES.get(item.status, "white")
        table.add_row(
            item.identity_key,
            item.name,
            item.image,
            f"[{style}]{item.status}[/{style}]",
            str(item.restart_count),
        )
    console.print(table)
    pagination = slice_.pagination
    console.print(
        f"Page {pagination.page}/{max(pagination.total_pages, 1)} "
        f"({pagination.total} total)"
    )


@containers.command()
@click.argument("container_id")
@click.argument("action", type=click.Choice(list(CONTAINER_ACTIONS)))
@click.option("--namespace", "-n", default=None, help="Namespace of the container")
@click.pass_obj
def action(state: CliState, container_id: str, action: str, namespace: str | None):
    """Run a lifecycle action on one container."""

    async def _action():
        async with state.runtime_factory() as runtime:
            await runtime.store.perform_action(container_id, action, namespace)
            return runtime.store.state.containers.items.get(container_id)

    try:
        container = run(_action())
    except GatewayError as exc:
        fail(exc)

    console.print(f"[green]{action} accepted for[/green] {container_id}")
    if container is not None:
        console.print(f"  Status: {container.status}")


@containers.command()
@click.argument("action", type=click.Choice(list(CONTAINER_ACTIONS)))
@click.argument("container_ids", nargs=-1, required=True)
@click.option("--namespace", "-n", default=None, help="Namespace of the containers")
@click.pass_obj
def batch(state: CliState, action: str, container_ids: tuple[str, ...], namespace: str | None):
    """Run one lifecycle action on several containers in a single request."""

    async def _batch():
        async with state.runtime_factory() as runtime:
            await runtime.store.batch_action(list(container_ids), action, namespace)

    try:
        run(_batch())
    except GatewayError as exc:
        fail(exc)
    console.print(f"[green]{action} accepted for {len(container_ids)} container(s)[/green]")
