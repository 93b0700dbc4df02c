"""Fleet GitOps wiring.

Rancher installs the Fleet CRDs asynchronously after its Helm release reports
ready, so GitRepo objects can only be applied once those CRDs exist.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from ..errors import BootstrapError, PollTimeout
from ..polling import attempts_for, poll_until, wait_until
from ..runner import CommandError, CommandRunner

FLEET_CRDS = (
    "gitrepos.fleet.cattle.io",
    "bundles.fleet.cattle.io",
    "clustergroups.fleet.cattle.io",
    "clusters.fleet.cattle.io",
)
FLEET_CONTROLLER_NAMESPACES = ("cattle-fleet-system", "fleet-system")
FLEET_LOCAL_NAMESPACE = "fleet-local"
FLEET_MANIFEST = Path("gitops") / "fleet.yaml"
CLUSTERS_MANIFEST = Path("gitops") / "clusters.yaml"

Sleep = Callable[[float], None]


def wait_for_crd(
    runner: CommandRunner,
    name: str,
    log: logging.Logger,
    *,
    timeout: float = 300,
    interval: float = 5,
    sleep: Sleep = time.sleep,
) -> None:
    log.info("Waiting for CRD '%s' to be available...", name)

    def progress(attempt: int, total: int) -> None:
        log.debug(
            "CRD '%s' not yet available, waiting %gs... (%g/%gs)",
            name,
            interval,
            attempt * interval,
            timeout,
        )

    wait_until(
        lambda: runner.succeeds(["kubectl", "get", "crd", name]),
        description=f"CRD '{name}'",
        interval=interval,
        max_attempts=attempts_for(timeout, interval),
        sleep=sleep,
        on_retry=progress,
    )
    log.info("CRD '%s' is available ✓", name)


def wait_for_fleet_crds(
    runner: CommandRunner,
    log: logging.Logger,
    *,
    timeout: float = 300,
    interval: float = 5,
    sleep: Sleep = time.sleep,
) -> None:
    log.info("Waiting for Fleet CRDs to be installed by Rancher...")
    for crd in FLEET_CRDS:
        try:
            wait_for_crd(runner, crd, log, timeout=timeout, interval=interval, sleep=sleep)
        except PollTimeout:
            log.error("Fleet CRD '%s' not available. Is Rancher fully installed?", crd)
            raise

    log.info("Waiting for Fleet controller to be ready...")
    for namespace in FLEET_CONTROLLER_NAMESPACES:
        if runner.succeeds(
            [
                "kubectl",
                "wait",
                "--for=condition=Available",
                "deployment/fleet-controller",
                "-n",
                namespace,
                f"--timeout={timeout:g}s",
            ]
        ):
            break
    else:
        log.warning("Fleet controller did not report Available; continuing anyway")
    log.info("Fleet CRDs and controller ready ✓")


def setup_gitops(
    runner: CommandRunner,
    repo_root: Path,
    log: logging.Logger,
    *,
    sleep: Sleep = time.sleep,
    crd_timeout: float = 300,
    namespace_timeout: float = 60,
    interval: float = 5,
) -> None:
    log.info("Setting up GitOps with Fleet...")
    try:
        wait_for_fleet_crds(runner, log, timeout=crd_timeout, interval=interval, sleep=sleep)
    except PollTimeout as exc:
        raise BootstrapError(
            "Fleet CRDs not available. Cannot configure GitOps. "
            "This usually means Rancher installation is incomplete. "
            "Check Rancher pods: kubectl -n cattle-system get pods"
        ) from exc

    log.info("Waiting for Fleet namespaces...")
    found = poll_until(
        lambda: runner.succeeds(["kubectl", "get", "namespace", FLEET_LOCAL_NAMESPACE]),
        interval=interval,
        max_attempts=attempts_for(namespace_timeout, interval),
        sleep=sleep,
        on_retry=lambda attempt, total: log.debug(
            "Waiting for %s namespace...", FLEET_LOCAL_NAMESPACE
        ),
    )
    if not found:
        log.warning(
            "Namespace %s not found; applying Fleet configuration anyway",
            FLEET_LOCAL_NAMESPACE,
        )

    log.info("Applying Fleet GitRepo configuration...")
    try:
        runner.run(["kubectl", "apply", "-f", str(repo_root / FLEET_MANIFEST)])
    except CommandError as exc:
        raise BootstrapError(f"Failed to apply Fleet configuration: {exc}") from exc

    clusters = repo_root / CLUSTERS_MANIFEST
    if clusters.is_file():
        runner.run(["kubectl", "apply", "-f", str(clusters)])
    log.info("GitOps setup complete ✓")
