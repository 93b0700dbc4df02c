"""Tests for Rancher credential backup and RBAC helpers."""

from __future__ import annotations

import base64
from datetime import datetime, timezone

import pytest
import yaml

from kubeworld_toolkit.errors import AccountError
from kubeworld_toolkit.rancher import accounts
from tests.helpers.fake_runner import FakeRunner


def _b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def test_gen_password_uses_shell_safe_alphabet() -> None:
    password = accounts.gen_password()

    assert len(password) == 24
    assert set(password) <= set(accounts.PASSWORD_ALPHABET)
    assert not set("'\"`$\\") & set(accounts.PASSWORD_ALPHABET)
    assert len(accounts.gen_password(40)) == 40


def test_gen_password_rejects_non_positive_length() -> None:
    with pytest.raises(AccountError):
        accounts.gen_password(0)


@pytest.mark.parametrize(
    ("role", "expected"),
    [("admin", "admin"), ("cluster-admin", "cluster-admin"), ("user", "view"), ("ops", "view")],
)
def test_cluster_role_mapping(role: str, expected: str) -> None:
    assert accounts.cluster_role_for(role) == expected


def test_role_binding_targets_user() -> None:
    binding = accounts.build_role_binding("alice", "cluster-admin")

    assert binding["kind"] == "ClusterRoleBinding"
    assert binding["metadata"]["name"] == "alice-cluster-admin"
    assert binding["subjects"][0]["name"] == "alice"
    assert binding["roleRef"]["name"] == "cluster-admin"


def test_backup_creds_applies_labelled_secret(settings, log) -> None:
    runner = FakeRunner().on("create namespace", "kind: Namespace\n")
    created = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)

    accounts.backup_creds(runner, settings, "Sup3r!secret", log, now=created)

    manifests = [yaml.safe_load(text) for text in runner.inputs if text and "Secret" in text]
    secret = manifests[-1]
    assert secret["metadata"]["name"] == "rancher-admin-creds"
    assert secret["metadata"]["namespace"] == "kube-world-secrets"
    assert secret["metadata"]["labels"]["app.kubernetes.io/part-of"] == "kube-world"
    assert secret["stringData"] == {
        "username": "admin",
        "password": "Sup3r!secret",
        "created": "2024-05-01T12:30:00Z",
    }
    assert all("Sup3r!secret" not in command for command in runner.commands())


def test_backup_creds_requires_password(settings, log) -> None:
    with pytest.raises(AccountError, match="Password required"):
        accounts.backup_creds(FakeRunner(), settings, "", log)


def test_show_password_prefers_backup_secret(settings, log, capsys) -> None:
    runner = FakeRunner().on("jsonpath={.data.password}", _b64("from-backup"))

    assert accounts.show_password(runner, settings, log) == "from-backup"
    assert "from-backup" in capsys.readouterr().out


def test_show_password_falls_back_to_bootstrap_secret(settings, log) -> None:
    runner = (
        FakeRunner()
        .on("get secret rancher-admin-creds", False)
        .on("jsonpath={.data.bootstrapPassword}", _b64("bootstrap-pass"))
    )

    assert accounts.show_password(runner, settings, log) == "bootstrap-pass"


def test_show_password_without_secrets_fails(settings, log) -> None:
    runner = FakeRunner().on("get secret", False)

    with pytest.raises(AccountError, match="reset-password"):
        accounts.show_password(runner, settings, log)


def test_reset_password_updates_secrets_and_restarts(settings, log, capsys) -> None:
    runner = FakeRunner().on("app=rancher", "rancher-7d9f")

    password = accounts.reset_password(runner, settings, log, "N3w-pass")

    assert password == "N3w-pass"
    commands = runner.commands()
    assert "kubectl -n cattle-system exec rancher-7d9f -- reset-password" in commands
    secrets = [yaml.safe_load(text) for text in runner.inputs if text and "Secret" in text]
    assert secrets[0]["metadata"]["name"] == "bootstrap-secret"
    assert secrets[0]["stringData"] == {"bootstrapPassword": "N3w-pass"}
    assert secrets[1]["stringData"]["password"] == "N3w-pass"
    assert commands[-2] == "kubectl -n cattle-system rollout restart deployment/rancher"
    assert commands[-1].startswith("kubectl -n cattle-system rollout status deployment/rancher")
    assert "New Password: N3w-pass" in capsys.readouterr().out


def test_reset_password_generates_one_when_missing(settings, log) -> None:
    runner = FakeRunner()

    password = accounts.reset_password(runner, settings, log)

    assert len(password) == accounts.DEFAULT_PASSWORD_LENGTH
    assert not runner.matching("reset-password")


def test_create_user_applies_binding(log, capsys) -> None:
    runner = FakeRunner()

    binding = accounts.create_user(runner, "bob", log)

    assert binding["roleRef"]["name"] == "view"
    applied = yaml.safe_load(runner.input_for("kubectl apply -f -"))
    assert applied == binding
    assert "'bob' has been granted 'view'" in capsys.readouterr().out


def test_create_user_requires_name(log) -> None:
    with pytest.raises(AccountError, match="Username required"):
        accounts.create_user(FakeRunner(), "", log)
