"""Console output helpers for the cloudsync CLI."""

import json
from typing import Any

from rich.console import Console


def _printable(message: str) -> str:
    """Escape lone surrogates left by undecodable file names."""
    return message.encode("utf-8", "backslashreplace").decode("utf-8")


class OutputFormatter:
    """Formats user facing messages.

    Informational output is suppressed in quiet mode; errors and warnings
    always go to stderr.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console(highlight=False, soft_wrap=True)
        self.err_console = Console(stderr=True, highlight=False, soft_wrap=True)

    def print(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(_printable(message), markup=False)

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(_printable(message), style="cyan", markup=False)

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(_printable(message), style="green", markup=False)

    def warning(self, message: str) -> None:
        self.err_console.print(
            f"Warning: {_printable(message)}", style="yellow", markup=False
        )

    def error(self, message: str) -> None:
        self.err_console.print(
            f"Error: {_printable(message)}", style="bold red", markup=False
        )

    def output_json(self, data: Any) -> None:
        self.console.print(json.dumps(data, indent=2), markup=False)

    def print_summary(self, title: str, rows: list[tuple[str, str]]) -> None:
        """Print a titled list of label/value pairs."""
        if self.quiet or self.json_output:
            return
        self.console.print(title, style="bold", markup=False)
        width = max((len(label) for label, _ in rows), default=0)
        for label, value in rows:
            line = f"  {label.ljust(width)}  {value}"
            self.console.print(_printable(line), markup=False)
