"""Helpers for kubeconfigs copied off K3s nodes."""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import urlparse, urlunparse

import yaml

from .errors import BootstrapError

LOOPBACK_HOSTS = ("127.0.0.1", "localhost")
PI_KUBECONFIG = Path.home() / ".kube" / "pi-config"


def rewrite_server_address(text: str, address: str) -> str:
    """Point every loopback cluster ``server`` URL in ``text`` at ``address``.

    K3s writes ``https://127.0.0.1:6443`` into ``/etc/rancher/k3s/k3s.yaml``, which
    is useless once the file leaves the node.
    """

    try:
        config = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise BootstrapError(f"Kubeconfig is not valid YAML: {exc}") from exc
    if not isinstance(config, dict):
        raise BootstrapError("Kubeconfig must be a YAML mapping")

    for entry in config.get("clusters") or []:
        cluster = entry.get("cluster") if isinstance(entry, dict) else None
        if not isinstance(cluster, dict) or "server" not in cluster:
            continue
        cluster["server"] = _replace_host(str(cluster["server"]), address)

    return yaml.safe_dump(config, sort_keys=False)


def write_kubeconfig(path: Path, text: str) -> Path:
    """Write ``text`` to ``path`` readable by the owner only, from creation on."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        # O_CREAT only applies the mode to new files.
        os.fchmod(handle.fileno(), 0o600)
        handle.write(text)
    return path


def _replace_host(server: str, address: str) -> str:
    parsed = urlparse(server)
    if parsed.hostname not in LOOPBACK_HOSTS:
        return server
    netloc = address if parsed.port is None else f"{address}:{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))
