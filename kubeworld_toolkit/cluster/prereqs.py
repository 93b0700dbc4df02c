"""Install the management-machine tool chain (kubectl, helm, kind, ansible, sops...)."""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Callable
from pathlib import Path

import requests

from ..errors import BootstrapError, RestartRequired
from ..runner import CommandRunner, command_exists
from ..settings import Settings

HOMEBREW_INSTALLER = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"
HELM_INSTALLER = "https://raw.githubusercontent.com/helm/helm/main/scripts/get-helm-3"
KUBECTL_STABLE = "https://dl.k8s.io/release/stable.txt"
KUBECTL_URL = "https://dl.k8s.io/release/{version}/bin/linux/{arch}/kubectl"
SOPS_URL = (
    "https://github.com/getsops/sops/releases/download/v{version}/sops-v{version}.linux.{arch}"
)
MAC_PACKAGES = ("kubectl", "helm", "kind", "ansible", "sops", "age", "jq", "yq", "k3sup")
LINUX_BASE_PACKAGES = ("curl", "wget", "git", "jq")
HTTP_TIMEOUT = 60

DOCKER_DESKTOP_HELP = """\
=============================================
  Docker Desktop Installation Required
=============================================

KIND (Kubernetes in Docker) requires Docker Desktop on macOS.

Install Docker Desktop:
  1. Download from: https://www.docker.com/products/docker-desktop/
     (Choose 'Mac with Apple Chip' for M1/M2/M3 Macs)
  2. Or install via Homebrew Cask:
     brew install --cask docker
  3. After installation, launch Docker Desktop from Applications
     and wait for it to fully start (whale icon in menu bar)
  4. Re-run this bootstrap

Alternative: For Pi deployment, use --platform pi instead.
"""

Prompt = Callable[[str], str]


def fetch_text(url: str, *, session: requests.Session | None = None) -> str:
    getter = session or requests
    try:
        response = getter.get(url, timeout=HTTP_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise BootstrapError(f"Failed to download {url}: {exc}") from exc
    return response.text


def download(url: str, destination: Path, *, session: requests.Session | None = None) -> Path:
    getter = session or requests
    try:
        with getter.get(url, stream=True, timeout=HTTP_TIMEOUT) as response:
            response.raise_for_status()
            with destination.open("wb") as handle:
                for chunk in response.iter_content(chunk_size=1 << 16):
                    handle.write(chunk)
    except requests.RequestException as exc:
        raise BootstrapError(f"Failed to download {url}: {exc}") from exc
    return destination


def install_binary(
    runner: CommandRunner,
    url: str,
    name: str,
    *,
    session: requests.Session | None = None,
) -> None:
    """Download ``url`` and install it as ``/usr/local/bin/<name>`` (root-owned, 0755)."""

    if runner.dry_run:
        runner.logger.info("DRY-RUN: download %s", url)
        return
    with tempfile.TemporaryDirectory(prefix="kube-world-") as tmpdir:
        staged = download(url, Path(tmpdir) / name, session=session)
        runner.run(
            [
                "sudo",
                "install",
                "-o",
                "root",
                "-g",
                "root",
                "-m",
                "0755",
                str(staged),
                f"/usr/local/bin/{name}",
            ]
        )


def install_prereqs_mac(
    runner: CommandRunner,
    log: logging.Logger,
    *,
    prompt: Prompt = input,
    session: requests.Session | None = None,
) -> None:
    log.info("Installing prerequisites for macOS...")

    if not command_exists("brew"):
        log.info("Installing Homebrew...")
        runner.run(["/bin/bash", "-c", fetch_text(HOMEBREW_INSTALLER, session=session)])

    if not command_exists("docker"):
        log.error("Docker Desktop is required but not installed.")
        print()
        print(DOCKER_DESKTOP_HELP)
        reply = prompt("Would you like to install Docker Desktop via Homebrew now? [y/N] ")
        if reply.strip().lower().startswith("y"):
            log.info("Installing Docker Desktop via Homebrew...")
            runner.run(["brew", "install", "--cask", "docker"])
            raise RestartRequired(
                "Docker Desktop installed. Launch it from Applications, wait for it to "
                "fully start, then re-run the bootstrap."
            )
        raise BootstrapError("Docker Desktop is required for the KIND-based Mac cluster.")

    if not runner.succeeds(["docker", "info"]):
        raise BootstrapError(
            "Docker Desktop is installed but not running. Launch Docker Desktop from "
            "Applications, wait for it to fully start, then re-run the bootstrap."
        )
    log.info("Docker Desktop detected and running ✓")

    for package in MAC_PACKAGES:
        if command_exists(package):
            log.debug("%s already installed", package)
            continue
        log.info("Installing %s...", package)
        runner.run(["brew", "install", package])


def debian_arch(runner: CommandRunner) -> str:
    return runner.capture(["dpkg", "--print-architecture"]) or "amd64"


def install_prereqs_linux(
    runner: CommandRunner,
    log: logging.Logger,
    settings: Settings,
    *,
    arch: str | None = None,
    session: requests.Session | None = None,
) -> None:
    log.info("Installing prerequisites for Linux...")
    runner.run(["sudo", "apt-get", "update", "-qq"])
    runner.run(["sudo", "apt-get", "install", "-y", "-qq", *LINUX_BASE_PACKAGES])
    arch = arch or debian_arch(runner)

    if not command_exists("kubectl"):
        log.info("Installing kubectl...")
        version = fetch_text(KUBECTL_STABLE, session=session).strip()
        install_binary(
            runner, KUBECTL_URL.format(version=version, arch=arch), "kubectl", session=session
        )

    if not command_exists("helm"):
        log.info("Installing Helm...")
        runner.run(
            ["bash"],
            input=fetch_text(HELM_INSTALLER, session=session),
            env={"DESIRED_VERSION": f"v{settings.helm_version.lstrip('v')}"},
        )

    if not command_exists("ansible"):
        log.info("Installing Ansible...")
        runner.run(["sudo", "apt-get", "install", "-y", "-qq", "ansible"])

    if not command_exists("sops"):
        log.info("Installing SOPS...")
        install_binary(
            runner,
            SOPS_URL.format(version=settings.sops_version.lstrip("v"), arch=arch),
            "sops",
            session=session,
        )
