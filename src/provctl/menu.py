"""Interactive selection loop driving the orchestrator."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from rich.console import Console
from rich.markup import escape

from .errors import UserAbort
from .facets.engine import Orchestrator
from .facets.models import FacetId
from .facets.registry import CONFIGURE_ALL_ORDER, facet_labels
from .prompts import Prompter
from .reporting import render_apply_result, render_status


class MenuState(str, Enum):
    """States of the selection loop."""

    IDLE = "idle"
    AWAITING_SELECTION = "awaiting-selection"
    EXECUTING = "executing"
    QUIT = "quit"


@dataclass(frozen=True)
class MenuEntry:
    """A numbered menu item."""

    key: str
    label: str
    facets: tuple[FacetId, ...] = ()
    kind: Literal["apply", "check"] = "apply"


MENU_ENTRIES: tuple[MenuEntry, ...] = (
    MenuEntry(
        "1",
        "Security hardening (SSH, firewall, fail2ban)",
        (FacetId.SSH, FacetId.FIREWALL, FacetId.FAIL2BAN),
    ),
    MenuEntry("2", "System optimization", (FacetId.SYSTEM,)),
    MenuEntry("3", "Monitoring setup", (FacetId.MONITORING,)),
    MenuEntry("4", "Install applications", (FacetId.APPLICATIONS,)),
    MenuEntry("5", "Configure DNS", (FacetId.DNS,)),
    MenuEntry("6", "Configure PostgreSQL", (FacetId.POSTGRES,)),
    MenuEntry("7", "Configure Redis", (FacetId.REDIS,)),
    MenuEntry("8", "Install Node.js (nvm)", (FacetId.NODEJS,)),
    MenuEntry("9", "Install & configure PM2", (FacetId.PM2,)),
    MenuEntry("10", "Domain & TLS certificate", (FacetId.TLS,)),
    MenuEntry("11", "Run all checks", kind="check"),
    MenuEntry("12", "Configure all (1-9 in order)", CONFIGURE_ALL_ORDER),
)

QUIT_KEYS = frozenset({"q", "quit"})


class MenuLoop:
    """Render status, read one selection, dispatch, repeat."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        *,
        console: Console,
        prompter: Prompter,
        entries: tuple[MenuEntry, ...] = MENU_ENTRIES,
    ) -> None:
        """Bind the loop to an orchestrator and its I/O."""
        self._orchestrator = orchestrator
        self._console = console
        self._prompter = prompter
        self._entries = {entry.key: entry for entry in entries}
        self._labels = facet_labels(orchestrator.registry)
        self.state = MenuState.IDLE

    def render(self) -> None:
        """Print the status of every facet followed by the menu."""
        self._console.rule("Server setup")
        render_status(self._console, self._orchestrator.check_all(), self._labels)
        self._console.print()
        for entry in self._entries.values():
            self._console.print(f"{entry.key:>3}. {escape(entry.label)}")
        self._console.print("  q. Quit")
        self.state = MenuState.AWAITING_SELECTION

    def step(self, selection: str) -> MenuState:
        """Handle one selection and return the resulting state."""
        choice = selection.strip().lower()
        if choice in QUIT_KEYS:
            self.state = MenuState.QUIT
            return self.state
        entry = self._entries.get(choice)
        if entry is None:
            self._console.print(f"[red]Invalid selection[/red] '{escape(selection.strip())}'.")
            self.state = MenuState.AWAITING_SELECTION
            return self.state

        self.state = MenuState.EXECUTING
        if entry.kind == "check":
            render_status(self._console, self._orchestrator.check_all(), self._labels)
        else:
            self._orchestrator.apply_many(
                entry.facets,
                on_result=lambda result: render_apply_result(self._console, result, self._labels),
            )
        self.state = MenuState.IDLE
        return self.state

    def run(self) -> None:
        """Loop until the operator quits or input ends."""
        while self.state is not MenuState.QUIT:
            if self.state is MenuState.IDLE:
                self.render()
            try:
                selection = self._prompter.ask("Select an option")
            except UserAbort:
                self.state = MenuState.QUIT
                break
            self.step(selection)


__all__ = ["MENU_ENTRIES", "MenuEntry", "MenuLoop", "MenuState"]
