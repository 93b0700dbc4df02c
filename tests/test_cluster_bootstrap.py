"""Tests for the end-to-end bootstrap orchestration."""

from __future__ import annotations

from datetime import datetime

import pytest

from kubeworld_toolkit.cluster import bootstrap
from kubeworld_toolkit.errors import BootstrapError
from tests.helpers.fake_runner import FakeRunner


@pytest.fixture
def steps(monkeypatch) -> list[str]:
    """Replace every bootstrap stage with a recorder."""

    calls: list[str] = []

    def record(name):
        return lambda *args, **kwargs: calls.append(name)

    monkeypatch.setattr(bootstrap.provision, "cleanup_existing", record("cleanup"))
    monkeypatch.setattr(bootstrap.prereqs, "install_prereqs_mac", record("prereqs-mac"))
    monkeypatch.setattr(bootstrap.prereqs, "install_prereqs_linux", record("prereqs-linux"))
    monkeypatch.setattr(bootstrap.preflight, "preflight_checks", record("preflight"))
    monkeypatch.setattr(bootstrap.provision, "setup_mac_cluster", record("mac-cluster"))
    monkeypatch.setattr(bootstrap.provision, "setup_pi_cluster", record("pi-cluster"))
    monkeypatch.setattr(bootstrap, "run_install", record("rancher"))
    monkeypatch.setattr(bootstrap.gitops, "setup_gitops", record("gitops"))
    monkeypatch.setattr(bootstrap.apps, "deploy_core_apps", record("apps"))
    monkeypatch.setattr(bootstrap, "verify_installation", record("verify"))
    return calls


def test_plan_includes_cleanup_only_when_requested() -> None:
    options = bootstrap.BootstrapOptions(platform="pi")

    assert bootstrap.plan_steps(options) == [
        "Install prerequisites",
        "Run preflight checks",
        "Setup pi cluster",
        "Install Rancher",
        "Setup GitOps",
        "Deploy core apps",
        "Verify installation",
    ]

    options.cleanup = True
    assert bootstrap.plan_steps(options)[2] == "Cleanup existing installation"


def test_log_file_defaults_to_repo_root(tmp_path) -> None:
    options = bootstrap.BootstrapOptions(repo_root=tmp_path)
    assert options.resolved_log_file() == tmp_path / ".bootstrap.log"

    options.log_file = tmp_path / "custom.log"
    assert options.resolved_log_file() == tmp_path / "custom.log"


def test_start_log_file_truncates_previous_run(tmp_path) -> None:
    path = tmp_path / "logs" / ".bootstrap.log"
    path.parent.mkdir()
    path.write_text("old run\n", encoding="utf-8")

    bootstrap.start_log_file(path, now=datetime(2024, 3, 9, 7, 5, 1))

    assert path.read_text(encoding="utf-8") == "Bootstrap started at Sat Mar 09 07:05:01 2024\n"


def test_verify_reports_missing_fleet(log, capsys) -> None:
    runner = FakeRunner().on("get gitrepo", False).on("get nodes", False)

    bootstrap.verify_installation(runner, log)

    out = capsys.readouterr().out
    assert "CLUSTER STATUS" in out
    assert "FLEET STATUS" in out
    assert "Fleet not yet configured" in out
    assert "kubectl -n cattle-system get pods" in runner.commands()


def test_verify_prints_gitrepos(log, capsys) -> None:
    runner = FakeRunner().on("get gitrepo", "NAME    REPO\nkube-world  https://example.test\n")

    bootstrap.verify_installation(runner, log)

    assert "kube-world  https://example.test" in capsys.readouterr().out


def test_dry_run_prints_plan_without_commands(log, settings, capsys, steps) -> None:
    runner = FakeRunner()
    options = bootstrap.BootstrapOptions(platform="mac-arm64", dry_run=True, cleanup=True)

    assert bootstrap.run_bootstrap(options, settings, log=log, runner=runner) is False

    out = capsys.readouterr().out
    assert "Would execute:" in out
    assert "  1. Install prerequisites" in out
    assert "  3. Cleanup existing installation" in out
    assert "  4. Setup mac-arm64 cluster" in out
    assert runner.calls == []
    assert steps == []


def test_unknown_mode_is_rejected(log, settings, steps) -> None:
    options = bootstrap.BootstrapOptions(platform="pi", mode="staging")

    with pytest.raises(BootstrapError, match="Unknown mode: staging"):
        bootstrap.run_bootstrap(options, settings, log=log, runner=FakeRunner())


def test_full_run_on_mac_follows_stage_order(tmp_path, log, settings, capsys, steps) -> None:
    options = bootstrap.BootstrapOptions(platform="mac-arm64", cleanup=True, repo_root=tmp_path)

    assert bootstrap.run_bootstrap(options, settings, log=log, runner=FakeRunner()) is True

    assert steps == [
        "cleanup",
        "prereqs-mac",
        "preflight",
        "mac-cluster",
        "rancher",
        "gitops",
        "apps",
        "verify",
    ]
    out = capsys.readouterr().out
    assert "Bootstrap Complete!" in out
    assert f"Logs saved to: {tmp_path / '.bootstrap.log'}" in out


def test_pi_run_skipping_prereqs(tmp_path, log, settings, steps) -> None:
    options = bootstrap.BootstrapOptions(platform="pi", skip_prereqs=True, repo_root=tmp_path)

    bootstrap.run_bootstrap(options, settings, log=log, runner=FakeRunner())

    assert steps[:2] == ["preflight", "pi-cluster"]
    assert "prereqs-linux" not in steps


def test_linux_hosts_cannot_host_the_cluster_yet(tmp_path, log, settings, steps) -> None:
    options = bootstrap.BootstrapOptions(platform="linux-amd64", repo_root=tmp_path)

    with pytest.raises(BootstrapError, match="Platform linux-amd64 not yet implemented"):
        bootstrap.run_bootstrap(options, settings, log=log, runner=FakeRunner())

    assert steps == ["prereqs-linux", "preflight"]
