"""Single-command bring-up of the kube-world management platform.

The workflow is strictly sequential: prerequisites, preflight checks, cluster
creation (KIND on macOS, Ansible-driven K3s on a Raspberry Pi), Rancher, Fleet
GitOps, core apps and a final status dump. Every step either completes or
raises; a failed run is fixed and re-run, nothing is rolled back.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import requests

from ..errors import BootstrapError
from ..logs import section
from ..platform import is_linux_family, is_mac, resolve_platform
from ..rancher.install import run_install
from ..runner import CommandError, CommandRunner
from ..settings import Settings
from . import apps, gitops, preflight, prereqs, provision

DEFAULT_LOG_FILE = ".bootstrap.log"
MODES = ("dev", "prod")

NEXT_STEPS = """\
Next steps:
  1. Change Rancher admin password
  2. Register additional clusters via Rancher UI
  3. Configure secrets in /secrets/ directory
  4. Deploy applications via GitOps"""


@dataclass(slots=True)
class BootstrapOptions:
    platform: str = ""
    mode: str = "dev"
    skip_prereqs: bool = False
    dry_run: bool = False
    cleanup: bool = False
    verbose: bool = False
    repo_root: Path = field(default_factory=Path.cwd)
    log_file: Path | None = None

    def resolved_log_file(self) -> Path:
        return self.log_file or self.repo_root / DEFAULT_LOG_FILE


def start_log_file(path: Path, *, now: datetime | None = None) -> Path:
    """Truncate ``path`` and stamp the start of a run."""

    path.parent.mkdir(parents=True, exist_ok=True)
    stamp = (now or datetime.now()).strftime("%a %b %d %H:%M:%S %Y")
    path.write_text(f"Bootstrap started at {stamp}\n", encoding="utf-8")
    return path


def header(now: datetime | None = None) -> str:
    rule = "=" * 46
    stamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    return f"\n{rule}\n  kube-world Bootstrap\n  {stamp}\n{rule}\n"


def plan_steps(options: BootstrapOptions) -> list[str]:
    steps = ["Install prerequisites", "Run preflight checks"]
    if options.cleanup:
        steps.append("Cleanup existing installation")
    steps.extend(
        [
            f"Setup {options.platform} cluster",
            "Install Rancher",
            "Setup GitOps",
            "Deploy core apps",
            "Verify installation",
        ]
    )
    return steps


def verify_installation(runner: CommandRunner, log: logging.Logger) -> None:
    log.info("Verifying installation...")
    checks = [
        ("CLUSTER STATUS", ["kubectl", "get", "nodes", "-o", "wide"]),
        ("NAMESPACES", ["kubectl", "get", "namespaces"]),
        ("RANCHER STATUS", ["kubectl", "-n", "cattle-system", "get", "pods"]),
    ]
    for title, command in checks:
        print(section(title))
        try:
            runner.run(command)
        except CommandError as exc:
            log.warning("%s", exc)

    print(section("FLEET STATUS"))
    try:
        print(runner.capture(["kubectl", "-n", "fleet-local", "get", "gitrepo"]))
    except CommandError:
        print("Fleet not yet configured")
    log.info("Verification complete ✓")


def completion_summary(log_file: Path) -> str:
    rule = "=" * 46
    return "\n".join(
        [
            "",
            rule,
            "  Bootstrap Complete! 🎉",
            rule,
            "",
            NEXT_STEPS,
            "",
            f"Logs saved to: {log_file}",
        ]
    )


def install_prerequisites(
    runner: CommandRunner,
    platform: str,
    settings: Settings,
    log: logging.Logger,
    *,
    prompt: Callable[[str], str] = input,
    session: requests.Session | None = None,
) -> None:
    if is_mac(platform):
        prereqs.install_prereqs_mac(runner, log, prompt=prompt, session=session)
    elif is_linux_family(platform):
        prereqs.install_prereqs_linux(runner, log, settings, session=session)


def setup_cluster(
    runner: CommandRunner,
    options: BootstrapOptions,
    settings: Settings,
    log: logging.Logger,
) -> None:
    if is_mac(options.platform):
        provision.setup_mac_cluster(runner, options.repo_root, log)
    elif options.platform == "pi":
        provision.setup_pi_cluster(runner, options.repo_root, settings, options.mode, log)
    else:
        raise BootstrapError(f"Platform {options.platform} not yet implemented")


def run_bootstrap(
    options: BootstrapOptions,
    settings: Settings,
    *,
    log: logging.Logger,
    runner: CommandRunner | None = None,
    prompt: Callable[[str], str] = input,
    sleep: Callable[[float], None] = time.sleep,
    session: requests.Session | None = None,
) -> bool:
    """Run the full bootstrap. Returns False when only the dry-run plan was shown."""

    if options.mode not in MODES:
        raise BootstrapError(f"Unknown mode: {options.mode} (expected dev or prod)")

    options.platform = resolve_platform(options.platform)
    log.info("Platform: %s", options.platform)
    log.info("Mode: %s", options.mode)

    if options.dry_run:
        log.info("DRY RUN MODE - no changes will be made")
        print("Would execute:")
        for index, step in enumerate(plan_steps(options), start=1):
            print(f"  {index}. {step}")
        return False

    runner = runner or CommandRunner(cwd=options.repo_root, logger=log)

    if options.cleanup:
        provision.cleanup_existing(runner, options.platform, log)

    if not options.skip_prereqs:
        install_prerequisites(
            runner, options.platform, settings, log, prompt=prompt, session=session
        )

    preflight.preflight_checks(
        runner, options.platform, log, cleanup=options.cleanup, session=session
    )
    setup_cluster(runner, options, settings, log)

    log.info("Installing Rancher...")
    run_install(runner, settings, log)
    gitops.setup_gitops(runner, options.repo_root, log, sleep=sleep)
    apps.deploy_core_apps(runner, options.repo_root, options.platform, log)
    verify_installation(runner, log)

    print(completion_summary(options.resolved_log_file()))
    return True
