"""Typer-powered command line for ``provctl``.

``provctl setup`` is the interactive entry point: it refreshes packages and
then hands control to the numbered menu. The remaining commands expose the
same facet checks and appliers, plus the deploy and update workflows, for
non-interactive use. Every command records one structured ``operation`` line
in the run log and exits ``1`` on any classified failure.
"""
from __future__ import annotations

import json
import os
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .deploy import WorkflowReport, deploy_application, update_application
from .errors import ProvisioningError
from .exit_codes import ExitCode
from .facets.engine import COLLABORATOR_ERRORS, Orchestrator, create_facet_context
from .facets.models import ApplyOutcome, FacetContext, FacetId
from .facets.registry import CONFIGURE_ALL_ORDER, facet_labels, parse_facets
from .logging import OperationScope, StructuredLogger
from .menu import MenuLoop
from .prompts import ConsolePrompter
from .providers import CommandError, PackageError
from .reporting import (
    print_error,
    print_info,
    print_warning,
    render_apply_result,
    status_table,
)

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Path to an alternate config file (defaults to /etc/provctl/config.yml).",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Idempotent Ubuntu server provisioning and status checks.

        Run `provctl setup` as root for the interactive menu, or use the
        individual commands to check, apply, deploy and update without it.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect the resolved configuration.")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger
    facets: FacetContext
    orchestrator: Orchestrator


def _is_root() -> bool:
    return os.geteuid() == 0


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(code=ExitCode.FAILURE) from exc

    logger = StructuredLogger(config.log_file)
    facets = create_facet_context(
        config,
        logger=logger,
        prompter=ConsolePrompter(console),
        console=console,
        is_root=_is_root(),
    )
    runtime = RuntimeContext(
        config=config,
        logger=logger,
        facets=facets,
        orchestrator=Orchestrator(facets),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the provctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        runtime = _ensure_runtime(ctx, config_file)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"provctl {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=ExitCode.OK)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.FAILURE,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _provisioning_error(op: OperationScope, exc: ProvisioningError) -> NoReturn:
    """Print a classified provisioning error and terminate the command."""
    print_error(console, exc)
    op.error(exc.message, errors=[exc.message, *exc.diagnostics], rc=ExitCode.FAILURE)
    raise typer.Exit(code=ExitCode.FAILURE)


def _require_root(runtime: RuntimeContext, op: OperationScope) -> None:
    if runtime.config.require_root and not runtime.facets.is_root:
        _command_error(op, "Please run provctl as root.")


def _render_workflow_report(report: WorkflowReport, headline: str) -> None:
    style = "green" if report.reachable else "yellow"
    console.print(f"[{style}]{headline}[/{style}]")
    if report.repository:
        print_info(console, f"Repository: {report.repository}")
    if report.branch:
        print_info(console, f"Branch: {report.branch}")
    print_info(console, f"Application port: {report.port}")
    if report.recent_commits:
        print_info(console, "Recent commits:")
        for line in report.recent_commits:
            console.print(f"  {line}", markup=False)
    for warning in report.warnings:
        print_warning(console, warning)


@app.command()
def setup(
    ctx: typer.Context,
    skip_upgrade: bool = typer.Option(
        False,
        "--skip-upgrade",
        help="Refresh package lists but do not upgrade installed packages.",
    ),
) -> None:
    """Update the system, then run the interactive provisioning menu."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "setup",
        args={"skip_upgrade": skip_upgrade},
        target={"kind": "system", "scope": "menu"},
    ) as op:
        _require_root(runtime, op)
        apt = runtime.facets.apt
        try:
            print_info(console, "Updating package lists")
            apt.update()
            op.add_step("apt-update")
            if not skip_upgrade:
                print_info(console, "Upgrading installed packages")
                apt.upgrade()
                op.add_step("apt-upgrade")
        except (CommandError, PackageError) as exc:
            _command_error(op, f"System update failed: {exc}")

        MenuLoop(
            runtime.orchestrator,
            console=console,
            prompter=runtime.facets.prompter,
        ).run()
        op.success("Interactive session ended.", changed=0)


@app.command()
def status(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit facet status as JSON instead of a table.",
    ),
    only: str | None = typer.Option(
        None,
        "--only",
        help="Comma-separated facets to check (defaults to all).",
    ),
) -> None:
    """Check every facet without changing anything."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "status",
        args={"json": json_output, "only": only},
        target={"kind": "facets"},
    ) as op:
        selected: list[FacetId] | None = None
        if only is not None:
            try:
                selected = parse_facets([only])
            except ValueError as exc:
                _command_error(op, str(exc))

        results = runtime.orchestrator.check_all(selected)
        if json_output:
            console.print_json(data={"facets": [result.to_dict() for result in results]})
        else:
            console.print(status_table(results, facet_labels(runtime.orchestrator.registry)))
        op.success(
            "Reported facet status.",
            changed=0,
            context={result.facet.value: result.status.value for result in results},
        )


@app.command()
def apply(
    ctx: typer.Context,
    facets: list[str] | None = typer.Argument(
        None,
        help="Facets to apply in the given order (e.g. ssh firewall).",
    ),
    all_facets: bool = typer.Option(
        False,
        "--all",
        help="Apply every facet of the configure-all sequence.",
    ),
) -> None:
    """Apply facets without the interactive menu."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "apply",
        args={"facets": list(facets or []), "all": all_facets},
        target={"kind": "facets"},
    ) as op:
        if all_facets and facets:
            _command_error(op, "Cannot combine facet names with --all.")
        if all_facets:
            selected = list(CONFIGURE_ALL_ORDER)
        else:
            try:
                selected = parse_facets(list(facets or []))
            except ValueError as exc:
                _command_error(op, str(exc))
        if not selected:
            _command_error(op, "Name at least one facet or pass --all.")

        _require_root(runtime, op)
        labels = facet_labels(runtime.orchestrator.registry)
        results = runtime.orchestrator.apply_many(
            selected,
            on_result=lambda result: render_apply_result(console, result, labels),
        )
        outcomes = {result.facet.value: result.outcome.value for result in results}
        failed = [result.facet.value for result in results if not result.succeeded]
        if failed:
            _command_error(
                op,
                f"{len(failed)} of {len(results)} facet(s) did not complete: {', '.join(failed)}",
                errors=[f"{facet}: {outcomes[facet]}" for facet in failed],
            )
        changed = sum(1 for result in results if result.outcome is ApplyOutcome.APPLIED)
        op.success(
            f"Applied {len(results)} facet(s).",
            changed=changed,
            context={"outcomes": outcomes},
        )


@app.command()
def deploy(
    ctx: typer.Context,
    repo: str | None = typer.Option(
        None,
        "--repo",
        help="GitHub SSH URL (git@github.com:owner/repo.git); prompted when omitted.",
    ),
    port: str | None = typer.Option(
        None,
        "--port",
        help="Port the application listens on; prompted when omitted.",
    ),
) -> None:
    """Clone, build and start the application behind nginx."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "deploy",
        args={"repo": repo, "port": port},
        target={"kind": "app", "name": runtime.config.app.process_name},
    ) as op:
        _require_root(runtime, op)
        try:
            report = deploy_application(runtime.facets, repo=repo, port=port)
        except ProvisioningError as exc:
            _provisioning_error(op, exc)
        except COLLABORATOR_ERRORS as exc:
            _command_error(op, f"Deployment failed: {exc}")

        _render_workflow_report(report, "Deployment complete.")
        if report.warnings:
            op.warning("Deployed; application not reachable yet.", warnings=report.warnings)
        else:
            op.success("Deployed application.", changed=1, context={"port": report.port})


@app.command()
def update(ctx: typer.Context) -> None:
    """Pull, rebuild and restart the deployed application."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "update",
        target={"kind": "app", "name": runtime.config.app.process_name},
    ) as op:
        _require_root(runtime, op)
        try:
            report = update_application(runtime.facets)
        except ProvisioningError as exc:
            _provisioning_error(op, exc)
        except COLLABORATOR_ERRORS as exc:
            _command_error(op, f"Update failed: {exc}")

        _render_workflow_report(report, "Update complete.")
        if report.warnings:
            op.warning("Updated; application not reachable yet.", warnings=report.warnings)
        else:
            op.success(
                "Updated application.",
                changed=1,
                context={"port": report.port, "branch": report.branch},
            )


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


__all__ = ["RuntimeContext", "app"]
