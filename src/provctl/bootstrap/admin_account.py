"""Utilities for inspecting and planning the administrative login account."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from ..providers.command import CommandRunner


@dataclass(slots=True)
class AdminAccountSpec:
    """Desired attributes for the sudo-capable admin account."""

    name: str
    group: str = "sudo"
    shell: str = "/bin/bash"


@dataclass(slots=True)
class AdminAccountStatus:
    """Current state of the admin account on the host."""

    user_exists: bool
    in_group: bool
    home: Path | None = None
    shell: str | None = None


@dataclass(slots=True)
class AdminAccountAction:
    """Single remediation step required to satisfy the desired state."""

    kind: Literal["create-user", "set-password", "add-to-group"]
    description: str
    command: list[str]
    input: str | None = None


@dataclass(slots=True)
class AdminAccountPlan:
    """Aggregated actions that bring the admin account in line."""

    spec: AdminAccountSpec
    status: AdminAccountStatus
    actions: list[AdminAccountAction] = field(default_factory=list)
    password: str | None = None


def group_members(group_file: Path, group: str) -> list[str]:
    """Return the supplementary members of *group* listed in *group_file*."""
    if not group_file.exists():
        return []
    for line in group_file.read_text(encoding="utf-8").splitlines():
        fields = line.split(":")
        if len(fields) < 4 or fields[0] != group:
            continue
        return [member.strip() for member in fields[3].split(",") if member.strip()]
    return []


def inspect_admin_account(
    spec: AdminAccountSpec,
    runner: CommandRunner,
    *,
    group_file: Path,
) -> AdminAccountStatus:
    """Return the current status for *spec* from ``getent`` and the group file."""
    entry = runner.output(["getent", "passwd", spec.name])
    if not entry:
        return AdminAccountStatus(user_exists=False, in_group=False)
    fields = entry.split(":")
    home = Path(fields[5]) if len(fields) > 5 and fields[5] else None
    shell = fields[6] if len(fields) > 6 else None
    return AdminAccountStatus(
        user_exists=True,
        in_group=spec.name in group_members(group_file, spec.group),
        home=home,
        shell=shell,
    )


def plan_admin_account(
    spec: AdminAccountSpec,
    status: AdminAccountStatus,
    *,
    password: str | None = None,
) -> AdminAccountPlan:
    """Return a plan describing how to satisfy *spec*.

    A password is only set for accounts created by the plan; existing users
    keep their credentials.
    """
    plan = AdminAccountPlan(spec=spec, status=status)

    if not status.user_exists:
        plan.actions.append(
            AdminAccountAction(
                kind="create-user",
                description=f"Create user '{spec.name}'.",
                command=["useradd", "-m", "-s", spec.shell, spec.name],
            )
        )
        if password:
            plan.password = password
            plan.actions.append(
                AdminAccountAction(
                    kind="set-password",
                    description=f"Set a generated password for '{spec.name}'.",
                    command=["chpasswd"],
                    input=f"{spec.name}:{password}\n",
                )
            )

    if not status.in_group:
        plan.actions.append(
            AdminAccountAction(
                kind="add-to-group",
                description=f"Add '{spec.name}' to group '{spec.group}'.",
                command=["usermod", "-aG", spec.group, spec.name],
            )
        )

    return plan


def apply_admin_account_plan(plan: AdminAccountPlan, runner: CommandRunner) -> None:
    """Execute the commands described by *plan*."""
    for action in plan.actions:
        runner.run(action.command, input=action.input)


__all__ = [
    "AdminAccountAction",
    "AdminAccountPlan",
    "AdminAccountSpec",
    "AdminAccountStatus",
    "apply_admin_account_plan",
    "group_members",
    "inspect_admin_account",
    "plan_admin_account",
]
