"""Helper utilities used by the SSH bootstrap workflow."""
from __future__ import annotations

from .admin_account import (
    AdminAccountAction,
    AdminAccountPlan,
    AdminAccountSpec,
    AdminAccountStatus,
    apply_admin_account_plan,
    group_members,
    inspect_admin_account,
    plan_admin_account,
)
from .ssh_keys import (
    authorized_keys_path,
    install_authorized_key,
    read_authorized_keys,
)

__all__ = [
    # admin account helpers
    "AdminAccountAction",
    "AdminAccountPlan",
    "AdminAccountSpec",
    "AdminAccountStatus",
    "group_members",
    "inspect_admin_account",
    "plan_admin_account",
    "apply_admin_account_plan",
    # authorized_keys helpers
    "authorized_keys_path",
    "install_authorized_key",
    "read_authorized_keys",
]
