"""Shared plumbing for kubedeck CLI commands."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, NoReturn, TypeVar

import click
from rich.console import Console

from kubedeck.dependencies import Runtime
from kubedeck.gateway.errors import GatewayError

T = TypeVar("T")

console = Console()


@dataclass
class CliState:
    runtime_factory: Callable[[], Runtime]


def run(coroutine: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coroutine)


def fail(error: GatewayError) -> NoReturn:
    console.print(f"[red]Error ({error.code}): {error.message}[/red]")
    if isinstance(error.details, list):
        for item in error.details:
            if isinstance(item, dict):
                console.print(f"  - {item.get('field', '?')}: {item.get('message', '')}")
    raise click.exceptions.Exit(1)


def print_session_expired(login_path: str) -> None:
    console.print(
        f"[yellow]Session expired ({login_path}). Run `kubedeck login` to sign in again.[/yellow]"
    )
