"""Tests for layered configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from kubeworld_toolkit.errors import BootstrapError
from kubeworld_toolkit.settings import Settings, apply_overrides, load_settings


def test_defaults_match_documented_versions() -> None:
    settings = load_settings(environ={})

    assert settings == Settings()
    assert settings.k3s_version == "v1.29.0+k3s1"
    assert settings.rancher_version == "2.13.1"
    assert settings.rancher_tls_source == "rancher"
    assert settings.secret_namespace == "kube-world-secrets"


def test_file_values_are_overridden_by_environment(tmp_path: Path) -> None:
    config = tmp_path / "kube-world.toml"
    config.write_text(
        """
[versions]
k3s = "v1.30.1+k3s1"
rancher = "2.9.0"

[rancher]
hostname = "rancher.lab.local"
replicas = 3

[pi]
user = "pi"
""",
        encoding="utf-8",
    )

    settings = load_settings(config, environ={"RANCHER_VERSION": "2.13.1", "PI_USER": ""})

    assert settings.k3s_version == "v1.30.1+k3s1"
    assert settings.rancher_version == "2.13.1"
    assert settings.rancher_hostname == "rancher.lab.local"
    assert settings.rancher_replicas == 3
    assert settings.pi_user == "pi"


def test_environment_integers_are_coerced() -> None:
    settings = load_settings(environ={"RANCHER_REPLICAS": "2", "WIFI_COUNTRY": "GB"})

    assert settings.rancher_replicas == 2
    assert settings.wifi_country == "GB"


@pytest.mark.parametrize("raw", ["zero", "0"])
def test_invalid_replica_counts_are_rejected(raw: str) -> None:
    with pytest.raises(BootstrapError, match="rancher_replicas"):
        load_settings(environ={"RANCHER_REPLICAS": raw})


def test_unknown_tls_source_is_rejected() -> None:
    with pytest.raises(BootstrapError, match="letsEncrypt"):
        load_settings(environ={"RANCHER_TLS_SOURCE": "acme"})


def test_missing_and_malformed_files_raise(tmp_path: Path) -> None:
    with pytest.raises(BootstrapError, match="not found"):
        load_settings(tmp_path / "missing.toml", environ={})

    broken = tmp_path / "broken.toml"
    broken.write_text("[versions\nk3s = 1", encoding="utf-8")
    with pytest.raises(BootstrapError, match="Invalid TOML"):
        load_settings(broken, environ={})

    wrong = tmp_path / "wrong.toml"
    wrong.write_text('rancher = "nope"\n', encoding="utf-8")
    with pytest.raises(BootstrapError, match="must be a table"):
        load_settings(wrong, environ={})


def test_overrides_are_validated_like_other_layers() -> None:
    settings = apply_overrides(
        Settings(), {"rancher_replicas": "3", "k3s_version": "v1.30.2+k3s1"}
    )
    assert settings.rancher_replicas == 3
    assert settings.k3s_version == "v1.30.2+k3s1"

    with pytest.raises(BootstrapError, match="rancher_replicas must be at least 1"):
        apply_overrides(Settings(), {"rancher_replicas": 0})
    with pytest.raises(BootstrapError, match="Unsupported Rancher TLS source"):
        apply_overrides(Settings(), {"rancher_tls_source": "acme"})
