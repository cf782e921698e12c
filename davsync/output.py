"""Terminal output formatting for davsync."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from .utils import format_size

output_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "green",
    }
)


class OutputFormatter:
    """Formats command output as rich text or JSON.

    Status messages go to stderr so that stdout only carries results
    (tables and JSON documents).
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        """Initialize output formatter.

        Args:
            json_output: Emit results as JSON instead of tables
            quiet: Suppress informational messages
            console: Console for results (defaults to stdout)
            err_console: Console for status messages (defaults to stderr)
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(theme=output_theme)
        self.err_console = err_console or Console(theme=output_theme, stderr=True)

    def _status(self, style: str, message: str) -> None:
        self.err_console.print(
            f"[{style}]{escape(message)}[/{style}]", highlight=False, soft_wrap=True
        )

    def info(self, message: str) -> None:
        """Print an informational message (suppressed in quiet/JSON mode)."""
        if self.quiet or self.json_output:
            return
        self._status("info", message)

    def success(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self._status("success", f"✓ {message}")

    def warning(self, message: str) -> None:
        if self.json_output:
            return
        self._status("warning", f"⚠ {message}")

    def error(self, message: str) -> None:
        """Print an error message; errors are never suppressed."""
        self._status("error", f"✗ {message}")

    def print(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self.console.print(escape(message), highlight=False, soft_wrap=True)

    def output_json(self, data: Any) -> None:
        """Write a JSON document to stdout."""
        self.console.print_json(json.dumps(data, default=str))

    def output_table(
        self,
        rows: list[dict[str, Any]],
        columns: list[str],
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        """Print rows as a table.

        Args:
            rows: One dict per row
            columns: Keys of the columns to show, in order
            headers: Optional display names for the columns
        """
        headers = headers or {}
        table = Table(show_header=True, header_style="bold", box=None)
        for column in columns:
            table.add_column(headers.get(column, column))
        for row in rows:
            table.add_row(*(escape(str(row.get(column, ""))) for column in columns))
        self.console.print(table)

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a titled list of key/value pairs."""
        if self.quiet or self.json_output:
            return
        table = Table(title=title, show_header=False, box=None)
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in items:
            table.add_row(key, escape(value))
        self.console.print(table)

    @staticmethod
    def format_size(size_bytes: int) -> str:
        return format_size(size_bytes)
