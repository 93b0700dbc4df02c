"""Rancher installation and account management."""

from .accounts import (
    backup_creds,
    build_role_binding,
    cluster_role_for,
    create_user,
    gen_password,
    reset_password,
    show_password,
)
from .install import build_cert_manager_command, build_rancher_command, run_install

__all__ = [
    "backup_creds",
    "build_cert_manager_command",
    "build_rancher_command",
    "build_role_binding",
    "cluster_role_for",
    "create_user",
    "gen_password",
    "reset_password",
    "run_install",
    "show_password",
]
