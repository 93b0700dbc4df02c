"""Entry points for the kube-world CLI."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from . import runner
from .cluster import bootstrap
from .errors import BootstrapError, RestartRequired
from .logs import configure_logging
from .pi import cloud_init, prep
from .rancher import accounts, install
from .settings import Settings, apply_overrides, load_settings

BOOTSTRAP_OVERRIDES = {"k3s_version": "k3s_version", "rancher_version": "rancher_version"}
RANCHER_OVERRIDES = {
    "hostname": "rancher_hostname",
    "tls_source": "rancher_tls_source",
    "replicas": "rancher_replicas",
    "letsencrypt_email": "letsencrypt_email",
}


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        help="Optional TOML file with [versions], [rancher], [pi] and [accounts] tables.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log debug output, including every command executed.",
    )


def add_bootstrap_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--platform",
        default="",
        help="Target platform: mac, mac-arm64, mac-amd64, pi, linux-* (default: auto-detect).",
    )
    parser.add_argument(
        "--mode",
        choices=bootstrap.MODES,
        default="dev",
        help="Deployment mode (default: dev).",
    )
    parser.add_argument(
        "--skip-prereqs",
        action="store_true",
        help="Skip prerequisite installation.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without executing anything.",
    )
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Tear down an existing setup before rebuilding.",
    )
    parser.add_argument(
        "--repo-root",
        default=".",
        help="Directory holding clusters/, pi-setup/, gitops/ and apps/ (default: cwd).",
    )
    parser.add_argument(
        "--log-file",
        help="Bootstrap log file (default: <repo-root>/.bootstrap.log).",
    )
    parser.add_argument("--k3s-version", help="Override K3S_VERSION.")
    parser.add_argument("--rancher-version", help="Override RANCHER_VERSION.")
    _add_common_arguments(parser)


def add_prep_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "host",
        nargs="?",
        help="Pi IP address or hostname (prompted for with --new-pi).",
    )
    parser.add_argument(
        "--new-pi",
        action="store_true",
        help="Show setup instructions for a freshly unboxed Pi first.",
    )
    parser.add_argument(
        "--join-cluster",
        action="store_true",
        help="Install K3s, fetch the kubeconfig and run the Ansible playbook.",
    )
    parser.add_argument(
        "--wifi-only",
        action="store_true",
        help="Only configure WiFi on the Pi.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the planned steps without touching the Pi.",
    )
    parser.add_argument("--repo-root", default=".", help="kube-world checkout (default: cwd).")
    _add_common_arguments(parser)


def add_cloud_init_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--hostname", default="pi-node-1", help="Pi hostname.")
    parser.add_argument(
        "--role",
        choices=cloud_init.ROLES,
        default="worker",
        help="Node role (default: worker).",
    )
    parser.add_argument("--wifi-ssid", help="WiFi network name.")
    parser.add_argument("--wifi-pass", help="WiFi password (prompted for when omitted).")
    parser.add_argument(
        "--wifi-country",
        help="WiFi regulatory domain (default: WIFI_COUNTRY or US).",
    )
    parser.add_argument(
        "--wifi-prehashed",
        action="store_true",
        help="Store the derived 64-character PSK instead of the plaintext passphrase.",
    )
    parser.add_argument("--user-pass", help="Password for the admin user (prompted when omitted).")
    parser.add_argument(
        "--password-hash",
        help="Pre-computed SHA-512 crypt hash ($6$...) for the admin user.",
    )
    parser.add_argument("--ssh-key", help="SSH public key file (default: ~/.ssh/id_ed25519.pub).")
    parser.add_argument("--ip", help="Static IP in CIDR form, e.g. 192.168.1.100/24.")
    parser.add_argument("--gateway", help="Gateway for the static IP.")
    parser.add_argument("--output", help="Output directory (default: ./output).")
    parser.add_argument("--copy-to", help="Copy the generated files here (SD boot mount).")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview the generated files without writing them.",
    )
    _add_common_arguments(parser)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kube-world",
        description="Bootstrap and operate the kube-world homelab platform.",
    )
    parser.set_defaults(handler=None)

    subparsers = parser.add_subparsers(dest="section")

    bootstrap_parser = subparsers.add_parser(
        "bootstrap",
        help="Create the management cluster, install Rancher and wire up Fleet GitOps.",
    )
    add_bootstrap_arguments(bootstrap_parser)
    bootstrap_parser.set_defaults(handler=_handle_bootstrap)

    pi_parser = subparsers.add_parser(
        "pi",
        help="Raspberry Pi workflows (preparation, cluster join, cloud-init).",
    )
    pi_subparsers = pi_parser.add_subparsers(dest="command")

    prep_parser = pi_subparsers.add_parser(
        "prep",
        help="Prepare a Pi over SSH and optionally join it to the cluster.",
    )
    add_prep_arguments(prep_parser)
    prep_parser.set_defaults(handler=_handle_pi_prep)

    cloud_init_parser = pi_subparsers.add_parser(
        "cloud-init",
        help="Generate cloud-init user-data, meta-data and network-config.",
    )
    add_cloud_init_arguments(cloud_init_parser)
    cloud_init_parser.set_defaults(handler=_handle_pi_cloud_init)

    rancher_parser = subparsers.add_parser(
        "rancher",
        help="Rancher installation and admin account management.",
    )
    rancher_subparsers = rancher_parser.add_subparsers(dest="command")

    install_parser = rancher_subparsers.add_parser(
        "install",
        help="Install cert-manager and Rancher into the current cluster.",
    )
    install_parser.add_argument("--hostname", help="Override RANCHER_HOSTNAME.")
    install_parser.add_argument(
        "--tls-source",
        choices=("rancher", "letsEncrypt", "secret"),
        help="Override RANCHER_TLS_SOURCE.",
    )
    install_parser.add_argument("--replicas", type=int, help="Override RANCHER_REPLICAS.")
    install_parser.add_argument("--letsencrypt-email", help="Override LETSENCRYPT_EMAIL.")
    _add_common_arguments(install_parser)
    install_parser.set_defaults(handler=_handle_rancher_install)

    account_parser = rancher_subparsers.add_parser(
        "account",
        help="Manage the Rancher admin password and RBAC users.",
    )
    account_subparsers = account_parser.add_subparsers(dest="action")

    gen_parser = account_subparsers.add_parser("gen-password", help="Print a random password.")
    gen_parser.add_argument(
        "length",
        nargs="?",
        type=int,
        default=accounts.DEFAULT_PASSWORD_LENGTH,
        help="Password length (default: 24).",
    )
    _add_common_arguments(gen_parser)
    gen_parser.set_defaults(handler=_handle_account_gen_password)

    show_parser = account_subparsers.add_parser(
        "show-password",
        help="Show the backed-up (or bootstrap) admin password.",
    )
    _add_common_arguments(show_parser)
    show_parser.set_defaults(handler=_handle_account_show_password)

    backup_parser = account_subparsers.add_parser(
        "backup-creds",
        help="Store the admin password in a Kubernetes secret.",
    )
    backup_parser.add_argument("password", help="Password to back up.")
    _add_common_arguments(backup_parser)
    backup_parser.set_defaults(handler=_handle_account_backup)

    reset_parser = account_subparsers.add_parser(
        "reset-password",
        help="Rotate the admin password (generated when omitted).",
    )
    reset_parser.add_argument("password", nargs="?", help="New password.")
    _add_common_arguments(reset_parser)
    reset_parser.set_defaults(handler=_handle_account_reset)

    user_parser = account_subparsers.add_parser(
        "create-user",
        help="Bind a user to admin, cluster-admin or view permissions.",
    )
    user_parser.add_argument("username", help="User name as created in the Rancher UI.")
    user_parser.add_argument(
        "role",
        nargs="?",
        default="user",
        help="admin, cluster-admin, or anything else for read-only (default: user).",
    )
    _add_common_arguments(user_parser)
    user_parser.set_defaults(handler=_handle_account_create_user)

    return parser


def _settings(args: argparse.Namespace, overrides: dict[str, str] | None = None) -> Settings:
    config = getattr(args, "config", None)
    settings = load_settings(Path(config).expanduser() if config else None)
    values = {
        field_name: getattr(args, option)
        for option, field_name in (overrides or {}).items()
        if getattr(args, option, None) is not None
    }
    return apply_overrides(settings, values)


def _logger(args: argparse.Namespace, name: str, tag: str, **kwargs) -> logging.Logger:
    return configure_logging(
        f"kubeworld.{name}", tag, verbose=getattr(args, "verbose", False), **kwargs
    )


def _fail(exc: Exception) -> int:
    print(f"error: {exc}", file=sys.stderr)
    return 1


def _handle_bootstrap(args: argparse.Namespace) -> int:
    options = bootstrap.BootstrapOptions(
        platform=args.platform,
        mode=args.mode,
        skip_prereqs=args.skip_prereqs,
        dry_run=args.dry_run,
        cleanup=args.cleanup,
        verbose=args.verbose,
        repo_root=Path(args.repo_root).expanduser().resolve(),
        log_file=Path(args.log_file).expanduser() if args.log_file else None,
    )
    print(bootstrap.header())
    log_file = bootstrap.start_log_file(options.resolved_log_file())
    log = _logger(args, "bootstrap", "INFO", log_file=log_file)
    try:
        settings = _settings(args, BOOTSTRAP_OVERRIDES)
        bootstrap.run_bootstrap(options, settings, log=log)
    except RestartRequired as exc:
        log.warning("%s", exc)
        return 0
    except (BootstrapError, runner.CommandError) as exc:
        log.error("%s", exc)
        return 1
    return 0


def _handle_pi_prep(args: argparse.Namespace) -> int:
    options = prep.PrepOptions(
        host=args.host,
        new_pi=args.new_pi,
        join_cluster=args.join_cluster,
        wifi_only=args.wifi_only,
        dry_run=args.dry_run,
        verbose=args.verbose,
        repo_root=Path(args.repo_root).expanduser().resolve(),
    )
    log = _logger(args, "pi", "PI-PREP")
    try:
        prep.run_prep(options, _settings(args), log=log)
    except (BootstrapError, runner.CommandError) as exc:
        return _fail(exc)
    return 0


def cloud_init_options(
    args: argparse.Namespace, settings: Settings
) -> cloud_init.CloudInitOptions:
    options = cloud_init.CloudInitOptions(
        hostname=args.hostname,
        role=args.role,
        wifi_ssid=args.wifi_ssid,
        wifi_password=args.wifi_pass,
        wifi_country=args.wifi_country or settings.wifi_country,
        wifi_prehashed=args.wifi_prehashed,
        user_password=args.user_pass,
        password_hash=args.password_hash,
        static_ip=args.ip,
        gateway=args.gateway,
        copy_to=Path(args.copy_to).expanduser() if args.copy_to else None,
        dry_run=args.dry_run,
    )
    if args.ssh_key:
        options.ssh_key_file = Path(args.ssh_key).expanduser()
    if args.output:
        options.output_dir = Path(args.output).expanduser()
    return options


def _handle_pi_cloud_init(args: argparse.Namespace) -> int:
    log = _logger(args, "cloud_init", "BUILD")
    try:
        options = cloud_init_options(args, _settings(args))
        cloud_init.build(options, runner=runner.CommandRunner(logger=log), log=log)
    except (BootstrapError, runner.CommandError) as exc:
        return _fail(exc)
    return 0


def _handle_rancher_install(args: argparse.Namespace) -> int:
    log = _logger(args, "rancher", "RANCHER")
    try:
        settings = _settings(args, RANCHER_OVERRIDES)
        install.run_install(runner.CommandRunner(logger=log), settings, log)
    except (BootstrapError, runner.CommandError) as exc:
        return _fail(exc)
    return 0


def _run_account_action(args: argparse.Namespace, action) -> int:
    log = _logger(args, "account", "ACCOUNT")
    try:
        action(runner.CommandRunner(logger=log), _settings(args), log)
    except (BootstrapError, runner.CommandError) as exc:
        return _fail(exc)
    return 0


def _handle_account_gen_password(args: argparse.Namespace) -> int:
    try:
        print(accounts.gen_password(args.length))
    except BootstrapError as exc:
        return _fail(exc)
    return 0


def _handle_account_show_password(args: argparse.Namespace) -> int:
    return _run_account_action(args, accounts.show_password)


def _handle_account_backup(args: argparse.Namespace) -> int:
    return _run_account_action(
        args,
        lambda cmd_runner, settings, log: accounts.backup_creds(
            cmd_runner, settings, args.password, log
        ),
    )


def _handle_account_reset(args: argparse.Namespace) -> int:
    return _run_account_action(
        args,
        lambda cmd_runner, settings, log: accounts.reset_password(
            cmd_runner, settings, log, args.password
        ),
    )


def _handle_account_create_user(args: argparse.Namespace) -> int:
    return _run_account_action(
        args,
        lambda cmd_runner, settings, log: accounts.create_user(
            cmd_runner, args.username, log, args.role
        ),
    )


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 1
    return handler(args)
