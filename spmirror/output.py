"""Console output formatting for the spmirror CLI."""

import json
from typing import Any

from rich.console import Console
from rich.markup import escape


class OutputFormatter:
    """Writes user-facing messages with rich, honoring quiet and JSON modes."""

    def __init__(self, json_output: bool = False, quiet: bool = False):
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console(highlight=False)
        self.err_console = Console(stderr=True, highlight=False)

    def print(self, message: str = "") -> None:
        if self.quiet or self.json_output:
            return
        self.console.print(escape(message))

    def info(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self.console.print(escape(message))

    def success(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self.console.print(f"[green]✓ {escape(message)}[/green]")

    def warning(self, message: str) -> None:
        # Warnings go to stderr so they stay visible with --json
        if self.quiet:
            return
        self.err_console.print(f"[yellow]⚠ {escape(message)}[/yellow]")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]✗ {escape(message)}[/red]")

    def output_json(self, data: Any) -> None:
        self.console.print_json(json.dumps(data, default=str))
