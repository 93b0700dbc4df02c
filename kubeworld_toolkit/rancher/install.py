"""Install cert-manager and Rancher with Helm."""

from __future__ import annotations

import logging

from ..errors import RancherError
from ..runner import CommandRunner
from ..settings import Settings

HELM_REPOS = {
    "rancher-stable": "https://releases.rancher.com/server-charts/stable",
    "jetstack": "https://charts.jetstack.io",
}
CERT_MANAGER_NAMESPACE = "cert-manager"


def build_helm_repo_commands() -> list[list[str]]:
    return [["helm", "repo", "add", name, url] for name, url in HELM_REPOS.items()]


def build_cert_manager_command(settings: Settings) -> list[str]:
    return [
        "helm",
        "upgrade",
        "--install",
        "cert-manager",
        "jetstack/cert-manager",
        "--namespace",
        CERT_MANAGER_NAMESPACE,
        "--version",
        settings.cert_manager_version,
        "--set",
        "installCRDs=true",
        "--set",
        "prometheus.enabled=true",
        "--wait",
        "--timeout",
        "5m",
    ]


def build_rancher_command(settings: Settings) -> list[str]:
    command = [
        "helm",
        "upgrade",
        "--install",
        "rancher",
        "rancher-stable/rancher",
        "--namespace",
        settings.rancher_namespace,
        "--version",
        settings.rancher_version,
        "--set",
        f"hostname={settings.rancher_hostname}",
        "--set",
        f"replicas={settings.rancher_replicas}",
        "--set",
        f"bootstrapPassword={settings.rancher_bootstrap_password}",
        "--set",
        f"ingress.tls.source={settings.rancher_tls_source}",
        "--set",
        "global.cattle.psp.enabled=false",
    ]
    if settings.rancher_tls_source == "letsEncrypt":
        command.extend(["--set", f"letsEncrypt.email={settings.letsencrypt_email}"])
    command.extend(["--wait", "--timeout", "10m"])
    return command


def ensure_namespace(runner: CommandRunner, name: str) -> None:
    """Create ``name`` idempotently (client-side dry-run piped into apply)."""

    manifest = runner.capture(
        ["kubectl", "create", "namespace", name, "--dry-run=client", "-o", "yaml"]
    )
    if manifest:
        runner.apply_manifest(manifest)


def add_helm_repos(runner: CommandRunner, log: logging.Logger) -> None:
    log.info("Adding Helm repositories...")
    for command in build_helm_repo_commands():
        if not runner.succeeds(command):
            log.debug("helm repo add %s returned non-zero (already present?)", command[3])
    runner.run(["helm", "repo", "update"])


def _release_installed(runner: CommandRunner, release: str, namespace: str) -> bool:
    return runner.succeeds(["helm", "status", release, "-n", namespace])


def install_cert_manager(runner: CommandRunner, settings: Settings, log: logging.Logger) -> None:
    log.info("Installing cert-manager %s...", settings.cert_manager_version)
    ensure_namespace(runner, CERT_MANAGER_NAMESPACE)
    if _release_installed(runner, "cert-manager", CERT_MANAGER_NAMESPACE):
        log.info("cert-manager already installed, upgrading...")
    runner.run(build_cert_manager_command(settings))

    log.info("Waiting for cert-manager webhook...")
    runner.run(
        [
            "kubectl",
            "wait",
            "--for=condition=Available",
            "deployment/cert-manager-webhook",
            "-n",
            CERT_MANAGER_NAMESPACE,
            "--timeout=120s",
        ]
    )
    log.info("cert-manager installed ✓")


def install_rancher(runner: CommandRunner, settings: Settings, log: logging.Logger) -> None:
    log.info("Installing Rancher %s...", settings.rancher_version)
    ensure_namespace(runner, settings.rancher_namespace)
    if _release_installed(runner, "rancher", settings.rancher_namespace):
        log.info("Rancher already installed, upgrading...")
    runner.run(build_rancher_command(settings))
    log.info("Rancher installed ✓")


def access_summary(settings: Settings) -> str:
    lines = [
        "==============================================",
        "  Rancher Installation Complete!",
        "==============================================",
        "",
        f"  URL: https://{settings.rancher_hostname}",
        f"  Initial Password: {settings.rancher_bootstrap_password}",
        "",
        "  IMPORTANT: Change the admin password immediately!",
    ]
    if settings.rancher_hostname == "localhost":
        lines.extend(
            [
                "",
                "  For local access, run:",
                f"    kubectl -n {settings.rancher_namespace} port-forward svc/rancher 8443:443",
                "  Then access: https://localhost:8443",
            ]
        )
    return "\n".join(lines)


def post_install(runner: CommandRunner, settings: Settings, log: logging.Logger) -> None:
    log.info("Running post-installation setup...")
    log.info("Waiting for Rancher deployment to be ready...")
    runner.run(
        [
            "kubectl",
            "-n",
            settings.rancher_namespace,
            "rollout",
            "status",
            "deploy/rancher",
            "--timeout=300s",
        ]
    )
    print()
    print(access_summary(settings))
    print()
    if runner.succeeds(["kubectl", "get", "namespace", "fleet-system"]):
        log.info("Fleet (GitOps) is available ✓")


def run_install(runner: CommandRunner, settings: Settings, log: logging.Logger) -> None:
    log.info("Starting Rancher installation...")
    if not runner.succeeds(["kubectl", "cluster-info"]):
        raise RancherError("Cannot connect to Kubernetes cluster")
    add_helm_repos(runner, log)
    install_cert_manager(runner, settings, log)
    install_rancher(runner, settings, log)
    post_install(runner, settings, log)
    log.info("Rancher setup complete!")
