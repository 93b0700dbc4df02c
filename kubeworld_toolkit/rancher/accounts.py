"""Rancher admin credential and RBAC helpers.

Credentials are backed up to a labelled Kubernetes secret so a forgotten admin
password never means a lockout: ``show-password`` reads the backup (or the
Rancher bootstrap secret), ``reset-password`` rotates it.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
import string
from datetime import datetime, timezone

import yaml

from ..errors import AccountError
from ..runner import CommandError, CommandRunner
from ..settings import Settings
from .install import ensure_namespace

# Quote, backslash, backtick and dollar are left out so the password survives shells.
PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#%^&*()_+-="
DEFAULT_PASSWORD_LENGTH = 24
ADMIN_USERNAME = "admin"
PART_OF_LABEL = {"app.kubernetes.io/part-of": "kube-world"}
ROLE_MAP = {"admin": "admin", "cluster-admin": "cluster-admin"}


def gen_password(length: int = DEFAULT_PASSWORD_LENGTH) -> str:
    if length < 1:
        raise AccountError("Password length must be positive")
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def cluster_role_for(role: str) -> str:
    return ROLE_MAP.get(role, "view")


def build_credentials_secret(settings: Settings, password: str, created: datetime) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "Opaque",
        "metadata": {
            "name": settings.secret_name,
            "namespace": settings.secret_namespace,
            "labels": {
                **PART_OF_LABEL,
                "app.kubernetes.io/component": "rancher-credentials",
            },
        },
        "stringData": {
            "username": ADMIN_USERNAME,
            "password": password,
            "created": created.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        },
    }


def build_bootstrap_secret(settings: Settings, password: str) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "Opaque",
        "metadata": {"name": "bootstrap-secret", "namespace": settings.rancher_namespace},
        "stringData": {"bootstrapPassword": password},
    }


def build_role_binding(username: str, role: str) -> dict:
    cluster_role = cluster_role_for(role)
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRoleBinding",
        "metadata": {
            "name": f"{username}-{cluster_role}",
            "labels": {**PART_OF_LABEL, "kube-world.io/managed-user": "true"},
        },
        "subjects": [
            {"kind": "User", "name": username, "apiGroup": "rbac.authorization.k8s.io"}
        ],
        "roleRef": {
            "kind": "ClusterRole",
            "name": cluster_role,
            "apiGroup": "rbac.authorization.k8s.io",
        },
    }


def _read_secret_field(
    runner: CommandRunner, name: str, namespace: str, key: str
) -> str | None:
    if not runner.succeeds(["kubectl", "get", "secret", name, "-n", namespace]):
        return None
    try:
        encoded = runner.capture(
            [
                "kubectl",
                "get",
                "secret",
                name,
                "-n",
                namespace,
                "-o",
                f"jsonpath={{.data.{key}}}",
            ]
        )
    except CommandError:
        return None
    if not encoded:
        return None
    try:
        return base64.b64decode(encoded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None


def show_password(runner: CommandRunner, settings: Settings, log: logging.Logger) -> str:
    log.info("Retrieving current bootstrap password...")
    password = _read_secret_field(
        runner, settings.secret_name, settings.secret_namespace, "password"
    )
    if password:
        print(f"\nCurrent Password (from backup secret): {password}\n")
        return password

    password = _read_secret_field(
        runner, "bootstrap-secret", settings.rancher_namespace, "bootstrapPassword"
    )
    if password:
        print(f"\nBootstrap Password: {password}\n")
        return password

    raise AccountError("Could not find stored password. Try reset-password instead.")


def backup_creds(
    runner: CommandRunner,
    settings: Settings,
    password: str,
    log: logging.Logger,
    *,
    now: datetime | None = None,
) -> None:
    if not password:
        raise AccountError("Password required for backup")
    log.info("Backing up credentials to Kubernetes secret...")
    ensure_namespace(runner, settings.secret_namespace)
    secret = build_credentials_secret(settings, password, now or datetime.now(timezone.utc))
    runner.apply_manifest(yaml.safe_dump(secret, sort_keys=False))
    log.info(
        "Credentials backed up to %s/%s ✓", settings.secret_namespace, settings.secret_name
    )


def reset_password(
    runner: CommandRunner,
    settings: Settings,
    log: logging.Logger,
    password: str | None = None,
) -> str:
    log.info("Resetting Rancher admin password...")
    if not password:
        password = gen_password()
        log.info("Generated new password: %s", password)

    namespace = settings.rancher_namespace
    log.info("Attempting password reset via Rancher pod...")
    try:
        pod = runner.capture(
            [
                "kubectl",
                "-n",
                namespace,
                "get",
                "pods",
                "-l",
                "app=rancher",
                "-o",
                "jsonpath={.items[0].metadata.name}",
            ]
        )
    except CommandError:
        pod = ""
    if pod:
        if runner.succeeds(["kubectl", "-n", namespace, "exec", pod, "--", "reset-password"]):
            log.info("Password reset command executed. Check pod logs for new password.")
        else:
            log.warning("reset-password command not available, trying alternative method...")

    log.info("Updating bootstrap secret...")
    secret = build_bootstrap_secret(settings, password)
    runner.apply_manifest(yaml.safe_dump(secret, sort_keys=False))

    backup_creds(runner, settings, password, log)

    log.info("Restarting Rancher deployment to apply changes...")
    runner.run(["kubectl", "-n", namespace, "rollout", "restart", "deployment/rancher"])
    runner.run(
        [
            "kubectl",
            "-n",
            namespace,
            "rollout",
            "status",
            "deployment/rancher",
            "--timeout=300s",
        ]
    )

    print(
        "\n".join(
            [
                "",
                "==============================================",
                "  Password Reset Complete",
                "==============================================",
                "",
                f"  New Password: {password}",
                f"  Username: {ADMIN_USERNAME}",
                "",
                f"  Password backed up to: {settings.secret_namespace}/{settings.secret_name}",
                "  Retrieve with: kube-world rancher account show-password",
                "",
                "  IMPORTANT: Log in and change password immediately!",
                "",
            ]
        )
    )
    return password


def create_user(
    runner: CommandRunner,
    username: str,
    log: logging.Logger,
    role: str = "user",
) -> dict:
    if not username:
        raise AccountError("Username required")
    binding = build_role_binding(username, role)
    cluster_role = binding["roleRef"]["name"]
    log.info("Creating RBAC user: %s with role: %s", username, role)
    runner.apply_manifest(yaml.safe_dump(binding, sort_keys=False))
    log.info("RBAC binding created for %s ✓", username)
    print(f"\n  User '{username}' has been granted '{cluster_role}' permissions.")
    print("  To complete user setup, create the user in Rancher UI with the same username.\n")
    return binding
