"""Apply the plain manifests under ``apps/``."""

from __future__ import annotations

import logging
from pathlib import Path

from ..runner import CommandRunner

# Fleet bundle configs have no apiVersion/kind; Fleet consumes them, kubectl cannot.
FLEET_BUNDLE_NAME = "fleet.yaml"


def collect_manifests(repo_root: Path, platform: str) -> list[Path]:
    manifests: list[Path] = []
    for directory in (repo_root / "apps" / "base", repo_root / "apps" / platform):
        if not directory.is_dir():
            continue
        manifests.extend(
            path
            for path in sorted(directory.glob("*.yaml"))
            if path.is_file() and path.name != FLEET_BUNDLE_NAME
        )
    return manifests


def deploy_core_apps(
    runner: CommandRunner, repo_root: Path, platform: str, log: logging.Logger
) -> list[Path]:
    """Apply each manifest, skipping failures; return the manifests that failed."""

    log.info("Deploying core applications...")
    failed: list[Path] = []
    for manifest in collect_manifests(repo_root, platform):
        log.debug("Applying: %s", manifest)
        if not runner.succeeds(["kubectl", "apply", "-f", str(manifest)]):
            log.warning("Failed to apply %s", manifest)
            failed.append(manifest)
    log.info("Core apps deployed ✓")
    return failed
