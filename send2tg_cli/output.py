"""Output helpers for the send2tg CLI."""

from __future__ import annotations

import json
from typing import Sequence

from rich.console import Console
from rich.table import Table

console = Console()


def print_json(data: object) -> None:
    payload = json.dumps(data, indent=2, default=str)
    console.print(payload, soft_wrap=True, markup=False, highlight=False)


def print_kv(title: str, items: Sequence[tuple[str, object]]) -> None:
    table = Table(title=title, show_header=False)
    table.add_column("Field")
    table.add_column("Value", overflow="fold")
    for key, value in items:
        table.add_row(key, _format_cell(value))
    console.print(table)


def _format_cell(value: object) -> str:
    if value is None:
        return ""
    return str(value)
