"""Sanity checks run before any cluster is created."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

import requests

from ..errors import BootstrapError
from ..runner import CommandRunner

MIN_FREE_GB = 10
CONNECTIVITY_URL = "https://github.com"
CONNECTIVITY_TIMEOUT = 5
PROC_CMDLINE = Path("/proc/cmdline")
PROC_SWAPS = Path("/proc/swaps")


def free_space_gb(path: str | Path = "/") -> int:
    return shutil.disk_usage(path).free // (1024**3)


def github_reachable(
    url: str = CONNECTIVITY_URL,
    *,
    timeout: float = CONNECTIVITY_TIMEOUT,
    session: requests.Session | None = None,
) -> bool:
    getter = session or requests
    try:
        getter.get(url, timeout=timeout)
    except requests.RequestException:
        return False
    return True


def cgroup_memory_enabled(cmdline_path: Path = PROC_CMDLINE) -> bool:
    try:
        return "cgroup_memory=1" in cmdline_path.read_text(encoding="utf-8")
    except OSError:
        return False


def swap_active(swaps_path: Path = PROC_SWAPS) -> bool:
    """Return True when ``/proc/swaps`` lists at least one device below its header."""

    try:
        lines = swaps_path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return False
    return any(line.strip() for line in lines[1:])


def preflight_checks(
    runner: CommandRunner,
    platform: str,
    log: logging.Logger,
    *,
    cleanup: bool = False,
    disk_path: str | Path = "/",
    session: requests.Session | None = None,
    cmdline_path: Path = PROC_CMDLINE,
    swaps_path: Path = PROC_SWAPS,
) -> None:
    log.info("Running preflight checks...")
    passed = True

    free = free_space_gb(disk_path)
    if free < MIN_FREE_GB:
        log.warning("Low disk space: %dGB available (%dGB recommended)", free, MIN_FREE_GB)

    if not github_reachable(session=session):
        log.error("Cannot reach GitHub. Check network connectivity.")
        passed = False

    if not cleanup and runner.succeeds(["kubectl", "cluster-info"], timeout=15):
        log.warning("Existing Kubernetes cluster detected. Use --cleanup to remove first.")

    if platform == "pi":
        if not cgroup_memory_enabled(cmdline_path):
            log.warning("cgroup memory not enabled. Required for K3s.")
        if swap_active(swaps_path):
            log.warning("Swap is enabled. Should be disabled for Kubernetes.")

    if not passed:
        raise BootstrapError("Preflight checks failed")
    log.info("Preflight checks passed ✓")
