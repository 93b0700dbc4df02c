"""Create (or tear down) the management cluster: KIND on macOS, K3s on Raspberry Pi."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from .. import kubeconfig
from ..errors import BootstrapError
from ..pi.remote import SshTarget
from ..platform import is_linux_family, is_mac
from ..runner import CommandRunner
from ..settings import Settings

KIND_CLUSTER = "kube-world"
LEGACY_KIND_CLUSTERS = ("management", KIND_CLUSTER)
KIND_CONFIG = Path("clusters") / "mac-local.yaml"
PI_INVENTORY = Path("pi-setup") / "inventory.ini"
PI_PLAYBOOK = Path("pi-setup") / "ansible" / "playbook.yml"
K3S_UNINSTALLERS = (
    ("server", Path("/usr/local/bin/k3s-uninstall.sh")),
    ("agent", Path("/usr/local/bin/k3s-agent-uninstall.sh")),
)
K3S_KUBECONFIG = "/etc/rancher/k3s/k3s.yaml"


def cleanup_existing(runner: CommandRunner, platform: str, log: logging.Logger) -> None:
    log.info("Cleaning up existing installation...")
    if is_mac(platform):
        for name in LEGACY_KIND_CLUSTERS:
            if not runner.succeeds(["kind", "delete", "cluster", "--name", name]):
                log.debug("KIND cluster %s could not be deleted (absent?)", name)
    elif is_linux_family(platform):
        for kind, script in K3S_UNINSTALLERS:
            if not script.exists():
                continue
            log.info("Uninstalling K3s %s...", kind)
            if not runner.succeeds(["sudo", str(script)]):
                log.warning("K3s %s uninstall script failed", kind)
    log.info("Cleanup complete ✓")


def kind_cluster_exists(runner: CommandRunner, name: str = KIND_CLUSTER) -> bool:
    output = runner.capture(["kind", "get", "clusters"])
    return name in output.split()


def setup_mac_cluster(runner: CommandRunner, repo_root: Path, log: logging.Logger) -> None:
    log.info("Setting up local development cluster on Mac...")
    if kind_cluster_exists(runner):
        log.info("KIND cluster '%s' already exists", KIND_CLUSTER)
    else:
        log.info("Creating KIND cluster...")
        runner.run(
            [
                "kind",
                "create",
                "cluster",
                "--name",
                KIND_CLUSTER,
                "--config",
                str(repo_root / KIND_CONFIG),
            ]
        )
    runner.run(["kubectl", "config", "use-context", f"kind-{KIND_CLUSTER}"])
    log.info("Waiting for cluster to be ready...")
    runner.run(["kubectl", "wait", "--for=condition=Ready", "nodes", "--all", "--timeout=300s"])
    log.info("Mac cluster setup complete ✓")


def first_master_host(inventory_text: str) -> str | None:
    """Return the first host listed under ``[masters]`` in an INI inventory."""

    in_masters = False
    for raw in inventory_text.splitlines():
        line = raw.strip()
        if line.startswith("["):
            in_masters = line == "[masters]"
            continue
        if in_masters and line and not line.startswith(("#", ";")):
            return line.split()[0]
    return None


def build_playbook_command(repo_root: Path, settings: Settings, mode: str) -> list[str]:
    return [
        "ansible-playbook",
        "-i",
        str(repo_root / PI_INVENTORY),
        str(repo_root / PI_PLAYBOOK),
        "-e",
        f"k3s_version={settings.k3s_version}",
        "-e",
        f"mode={mode}",
    ]


def setup_pi_cluster(
    runner: CommandRunner,
    repo_root: Path,
    settings: Settings,
    mode: str,
    log: logging.Logger,
    *,
    kubeconfig_path: Path = kubeconfig.PI_KUBECONFIG,
) -> Path:
    """Run the Pi playbook, then pull the master's kubeconfig and point ``KUBECONFIG`` at it."""

    log.info("Setting up K3s cluster on Raspberry Pi...")
    playbook = repo_root / PI_PLAYBOOK
    if not playbook.is_file():
        raise BootstrapError(f"Ansible playbook not found at {playbook}")
    runner.run(build_playbook_command(repo_root, settings, mode))

    inventory = repo_root / PI_INVENTORY
    try:
        master = first_master_host(inventory.read_text(encoding="utf-8"))
    except OSError as exc:
        raise BootstrapError(f"Cannot read inventory {inventory}: {exc}") from exc
    if not master:
        raise BootstrapError(f"No host listed under [masters] in {inventory}")

    target = SshTarget(master, user=settings.pi_user)
    with tempfile.TemporaryDirectory(prefix="kube-world-") as tmpdir:
        staged = Path(tmpdir) / "k3s.yaml"
        runner.run(target.scp_from(K3S_KUBECONFIG, staged))
        if runner.dry_run:
            log.info("DRY-RUN: rewrite kubeconfig server to %s", master)
        else:
            text = kubeconfig.rewrite_server_address(staged.read_text(encoding="utf-8"), master)
            kubeconfig.write_kubeconfig(kubeconfig_path, text)

    runner.env["KUBECONFIG"] = str(kubeconfig_path)
    log.info("Pi cluster setup complete ✓")
    return kubeconfig_path
