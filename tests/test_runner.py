"""Tests for the kube-world runner helpers."""

from __future__ import annotations

import logging
import os
import runpy
import subprocess
from types import SimpleNamespace

import pytest

from kubeworld_toolkit import cli, runner


@pytest.fixture(autouse=True)
def _preserve_env():
    original = os.environ.copy()
    try:
        yield
    finally:
        os.environ.clear()
        os.environ.update(original)


def test_command_runner_run_layers_env_overrides(monkeypatch: pytest.MonkeyPatch):
    recorded = {}

    def fake_run(command, **kwargs):
        recorded.update(kwargs, command=command)
        return SimpleNamespace(returncode=0, stderr="")

    monkeypatch.setattr(runner.subprocess, "run", fake_run)
    os.environ["BASE_VALUE"] = "base"

    cmd_runner = runner.CommandRunner(env={"KUBECONFIG": "/tmp/pi-config"})
    cmd_runner.run(["ansible-playbook", "site.yml"], env={"ANSIBLE_CONFIG": "ansible.cfg"})

    assert recorded["command"] == ["ansible-playbook", "site.yml"]
    assert recorded["env"]["KUBECONFIG"] == "/tmp/pi-config"
    assert recorded["env"]["ANSIBLE_CONFIG"] == "ansible.cfg"
    assert recorded["env"]["BASE_VALUE"] == "base"
    assert recorded["check"] is False


def test_command_runner_without_overrides_inherits_environment(monkeypatch):
    recorded = {}

    def fake_run(command, **kwargs):
        recorded.update(kwargs)
        return SimpleNamespace(returncode=0, stderr="")

    monkeypatch.setattr(runner.subprocess, "run", fake_run)

    runner.CommandRunner().run(["true"])

    assert recorded["env"] is None


def test_command_runner_run_raises_on_failure(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(
        runner.subprocess,
        "run",
        lambda *_args, **_kwargs: SimpleNamespace(returncode=2, stderr="no such release"),
    )

    with pytest.raises(runner.CommandError) as excinfo:
        runner.CommandRunner().run(["helm", "status", "rancher"])

    assert excinfo.value.returncode == 2
    assert "no such release" in str(excinfo.value)


def test_capture_returns_stripped_stdout(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(
        runner.subprocess,
        "run",
        lambda *_args, **_kwargs: SimpleNamespace(returncode=0, stdout="arm64\n", stderr=""),
    )

    assert runner.CommandRunner().capture(["dpkg", "--print-architecture"]) == "arm64"


def test_succeeds_treats_missing_binary_and_timeout_as_failure(monkeypatch):
    def missing(*_args, **_kwargs):
        raise FileNotFoundError("kind")

    def slow(command, **kwargs):
        raise subprocess.TimeoutExpired(command, kwargs["timeout"])

    cmd_runner = runner.CommandRunner()

    monkeypatch.setattr(runner.subprocess, "run", missing)
    assert cmd_runner.succeeds(["kind", "get", "clusters"]) is False

    monkeypatch.setattr(runner.subprocess, "run", slow)
    assert cmd_runner.succeeds(["kubectl", "cluster-info"], timeout=1) is False


def test_dry_run_logs_and_never_executes(monkeypatch, caplog):
    def fail(*_args, **_kwargs):  # pragma: no cover - defensive
        raise AssertionError("subprocess should not run in dry-run mode")

    monkeypatch.setattr(runner.subprocess, "run", fail)
    logger = logging.getLogger("kubeworld.tests.dry-run")
    cmd_runner = runner.CommandRunner(dry_run=True, logger=logger)

    with caplog.at_level(logging.INFO, logger="kubeworld.tests.dry-run"):
        cmd_runner.run(["kubectl", "apply", "-f", "gitops/fleet.yaml"])
        assert cmd_runner.capture(["kind", "get", "clusters"]) == ""
        assert cmd_runner.succeeds(["docker", "info"]) is True

    assert "DRY-RUN: kubectl apply -f gitops/fleet.yaml" in caplog.text


def test_apply_manifest_pipes_yaml_to_kubectl(monkeypatch):
    recorded = {}

    def fake_run(command, **kwargs):
        recorded.update(kwargs, command=command)
        return SimpleNamespace(returncode=0, stderr="")

    monkeypatch.setattr(runner.subprocess, "run", fake_run)

    runner.CommandRunner().apply_manifest("kind: Namespace\n")

    assert recorded["command"] == ["kubectl", "apply", "-f", "-"]
    assert recorded["input"] == "kind: Namespace\n"


def test_main_module_invokes_cli_main(monkeypatch: pytest.MonkeyPatch):
    """The module entry point should exit using the CLI's main function."""

    monkeypatch.setattr(cli, "main", lambda: 42)

    with pytest.raises(SystemExit) as excinfo:
        runpy.run_module("kubeworld_toolkit.__main__", run_name="__main__")

    assert excinfo.value.code == 42
