"""CLI command groups and the helpers they share."""
import dataclasses
import functools
import json
from typing import Any, Callable

import typer

from ..errors import NodePilotError
from ..models import DrainOptions


def print_progress(message: str) -> None:
    typer.echo(f"   {message}")


def print_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def with_overrides(options: DrainOptions, **overrides: Any) -> DrainOptions:
    """Copy of options with every override that is not None applied."""
    return dataclasses.replace(options, **{k: v for k, v in overrides.items() if v is not None})


def exit_on_error(func: Callable) -> Callable:
    """Turn nodepilot errors into a message and exit code 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except NodePilotError as e:
            typer.echo(f"❌ {e}", err=True)
            raise typer.Exit(code=1)
    return wrapper


__all__ = ['exit_on_error', 'print_json', 'print_progress', 'with_overrides']
