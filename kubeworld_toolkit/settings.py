"""Configuration shared by the bootstrap, Pi and Rancher workflows.

Values resolve in this order, later sources winning: built-in defaults, an
optional TOML file, then environment variables. CLI flags are applied by the
individual commands on top of the returned :class:`Settings`.

Example ``kube-world.toml``::

    [versions]
    k3s = "v1.29.0+k3s1"
    rancher = "2.13.1"

    [rancher]
    hostname = "rancher.lab.local"
    tls_source = "letsEncrypt"
    letsencrypt_email = "ops@lab.local"

    [pi]
    user = "admin"
"""

from __future__ import annotations

import dataclasses
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .errors import BootstrapError

TLS_SOURCES = ("rancher", "letsEncrypt", "secret")


@dataclass(slots=True)
class Settings:
    k3s_version: str = "v1.29.0+k3s1"
    rancher_version: str = "2.13.1"
    helm_version: str = "3.14.0"
    cert_manager_version: str = "v1.14.0"
    sops_version: str = "3.8.1"
    rancher_hostname: str = "localhost"
    rancher_bootstrap_password: str = "admin"
    rancher_replicas: int = 1
    rancher_tls_source: str = "rancher"
    letsencrypt_email: str = "admin@example.com"
    pi_user: str = "admin"
    wifi_country: str = "US"
    rancher_namespace: str = "cattle-system"
    secret_name: str = "rancher-admin-creds"
    secret_namespace: str = "kube-world-secrets"


# Environment variable -> Settings field.
ENVIRONMENT = {
    "K3S_VERSION": "k3s_version",
    "RANCHER_VERSION": "rancher_version",
    "HELM_VERSION": "helm_version",
    "CERT_MANAGER_VERSION": "cert_manager_version",
    "SOPS_VERSION": "sops_version",
    "RANCHER_HOSTNAME": "rancher_hostname",
    "RANCHER_BOOTSTRAP_PASSWORD": "rancher_bootstrap_password",
    "RANCHER_REPLICAS": "rancher_replicas",
    "RANCHER_TLS_SOURCE": "rancher_tls_source",
    "LETSENCRYPT_EMAIL": "letsencrypt_email",
    "PI_USER": "pi_user",
    "WIFI_COUNTRY": "wifi_country",
    "RANCHER_NAMESPACE": "rancher_namespace",
    "SECRET_NAME": "secret_name",
    "SECRET_NAMESPACE": "secret_namespace",
}

# TOML table -> {key: Settings field}.
FILE_SECTIONS = {
    "versions": {
        "k3s": "k3s_version",
        "rancher": "rancher_version",
        "helm": "helm_version",
        "cert_manager": "cert_manager_version",
        "sops": "sops_version",
    },
    "rancher": {
        "hostname": "rancher_hostname",
        "bootstrap_password": "rancher_bootstrap_password",
        "replicas": "rancher_replicas",
        "tls_source": "rancher_tls_source",
        "letsencrypt_email": "letsencrypt_email",
        "namespace": "rancher_namespace",
    },
    "pi": {
        "user": "pi_user",
        "wifi_country": "wifi_country",
    },
    "accounts": {
        "secret_name": "secret_name",
        "secret_namespace": "secret_namespace",
    },
}


def load_settings(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    environ = os.environ if environ is None else environ
    values: dict[str, object] = {}

    if path is not None:
        values.update(_load_file(path))

    for variable, field_name in ENVIRONMENT.items():
        raw = environ.get(variable)
        if raw:
            values[field_name] = raw

    return apply_overrides(Settings(), values)


def apply_overrides(settings: Settings, values: Mapping[str, object]) -> Settings:
    """Coerce and validate ``values`` onto ``settings`` (used for each layer)."""

    for field_name, raw in values.items():
        setattr(settings, field_name, _coerce(field_name, raw))

    if settings.rancher_tls_source not in TLS_SOURCES:
        raise BootstrapError(
            f"Unsupported Rancher TLS source '{settings.rancher_tls_source}'. "
            f"Choose one of: {', '.join(TLS_SOURCES)}"
        )
    return settings


def _load_file(path: Path) -> dict[str, object]:
    if not path.exists():
        raise BootstrapError(f"Configuration file not found: {path}")
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise BootstrapError(f"Invalid TOML in {path}: {exc}") from exc

    values: dict[str, object] = {}
    for section_name, mapping in FILE_SECTIONS.items():
        section = data.get(section_name, {})
        if not isinstance(section, dict):
            raise BootstrapError(f"[{section_name}] in {path} must be a table.")
        for key, field_name in mapping.items():
            if key in section:
                values[field_name] = section[key]
    return values


def _coerce(field_name: str, raw: object) -> object:
    field = next(f for f in dataclasses.fields(Settings) if f.name == field_name)
    if field.type in (int, "int"):
        try:
            value = int(raw)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise BootstrapError(f"{field_name} must be an integer, got {raw!r}") from exc
        if value < 1:
            raise BootstrapError(f"{field_name} must be at least 1, got {value}")
        return value
    return str(raw)
