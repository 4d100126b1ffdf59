"""Line-based interactive prompts."""
from __future__ import annotations

from typing import Protocol

import typer
from rich.console import Console

from .errors import UserAbort
from .validators import parse_yes_no


class Prompter(Protocol):
    """Source of operator answers for appliers and the menu loop."""

    def ask(self, message: str, *, default: str | None = None) -> str:
        """Return one line of text."""

    def confirm(self, message: str, *, default: bool | None = None) -> bool:
        """Block until the operator answers yes or no."""


class ConsolePrompter:
    """Prompt on the controlling terminal via Typer."""

    def __init__(self, console: Console) -> None:
        """Use *console* for re-prompt hints."""
        self._console = console

    def ask(self, message: str, *, default: str | None = None) -> str:
        """Return one line of text; closed input raises :class:`UserAbort`."""
        try:
            if default is None:
                value = typer.prompt(message, default="", show_default=False)
            else:
                value = typer.prompt(message, default=default)
        except typer.Abort as exc:
            raise UserAbort("Input closed.") from exc
        return str(value).strip()

    def confirm(self, message: str, *, default: bool | None = None) -> bool:
        """Re-prompt until the answer is yes or no (or empty with a default)."""
        suffix = {True: "[Y/n]", False: "[y/N]", None: "(yes/no)"}[default]
        while True:
            answer = self.ask(f"{message} {suffix}")
            if not answer and default is not None:
                return default
            parsed = parse_yes_no(answer)
            if parsed is not None:
                return parsed
            self._console.print("[yellow]Please answer yes or no.[/yellow]")


__all__ = ["ConsolePrompter", "Prompter"]
