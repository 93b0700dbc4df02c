"""Tests for the kube-world command line entry points."""

from __future__ import annotations

import pytest
import requests

from kubeworld_toolkit import cli
from kubeworld_toolkit.cluster import prereqs
from kubeworld_toolkit.errors import RancherError, RestartRequired
from kubeworld_toolkit.settings import ENVIRONMENT, Settings
from scripts import bootstrap as bootstrap_script
from scripts import build_cloud_init as cloud_init_script
from scripts import pi_prep as pi_prep_script
from tests.helpers.fake_runner import FakeRunner


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for variable in ENVIRONMENT:
        monkeypatch.delenv(variable, raising=False)


def test_no_subcommand_prints_help(capsys) -> None:
    assert cli.main([]) == 1
    assert "usage: kube-world" in capsys.readouterr().out


def test_section_without_action_prints_help(capsys) -> None:
    assert cli.main(["rancher", "account"]) == 1


def test_gen_password_prints_requested_length(capsys) -> None:
    assert cli.main(["rancher", "account", "gen-password", "16"]) == 0
    assert len(capsys.readouterr().out.strip()) == 16


def test_gen_password_rejects_zero_length(capsys) -> None:
    assert cli.main(["rancher", "account", "gen-password", "0"]) == 1
    assert "error: Password length must be positive" in capsys.readouterr().err


def test_bootstrap_dry_run_writes_log(tmp_path, capsys) -> None:
    exit_code = cli.main(
        ["bootstrap", "--dry-run", "--platform", "mac-arm64", "--repo-root", str(tmp_path)]
    )

    assert exit_code == 0
    captured = capsys.readouterr()
    assert "kube-world Bootstrap" in captured.out
    assert "Would execute:" in captured.out
    assert "[INFO] DRY RUN MODE" in captured.err
    log_text = (tmp_path / ".bootstrap.log").read_text(encoding="utf-8")
    assert log_text.startswith("Bootstrap started at ")
    assert "[INFO] Platform: mac-arm64" in log_text


def test_bootstrap_rejects_unknown_mode(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["bootstrap", "--mode", "staging"])
    assert excinfo.value.code == 2


def test_bootstrap_failure_is_logged_and_returns_one(monkeypatch, tmp_path, capsys) -> None:
    def explode(options, settings, *, log):
        raise RancherError("Cannot connect to Kubernetes cluster")

    monkeypatch.setattr(cli.bootstrap, "run_bootstrap", explode)

    assert cli.main(["bootstrap", "--repo-root", str(tmp_path)]) == 1
    assert "[ERROR] Cannot connect to Kubernetes cluster" in capsys.readouterr().err
    log_text = (tmp_path / ".bootstrap.log").read_text(encoding="utf-8")
    assert "[ERROR] Cannot connect" in log_text


def test_bootstrap_network_failure_is_reported(monkeypatch, tmp_path, capsys) -> None:
    def offline(url, **kwargs):
        raise requests.ConnectionError("network down")

    monkeypatch.setattr(prereqs.requests, "get", offline)
    monkeypatch.setattr(prereqs, "command_exists", lambda name: False)
    monkeypatch.setattr(cli.bootstrap, "CommandRunner", lambda **kwargs: FakeRunner())

    exit_code = cli.main(
        ["bootstrap", "--platform", "linux-amd64", "--repo-root", str(tmp_path)]
    )

    assert exit_code == 1
    err = capsys.readouterr().err
    assert "[ERROR] Failed to download https://dl.k8s.io/release/stable.txt" in err
    assert "network down" in err


def test_bootstrap_restart_request_exits_cleanly(monkeypatch, tmp_path, capsys) -> None:
    def restart(options, settings, *, log):
        raise RestartRequired("Docker Desktop installed. Re-run the bootstrap.")

    monkeypatch.setattr(cli.bootstrap, "run_bootstrap", restart)

    assert cli.main(["bootstrap", "--repo-root", str(tmp_path)]) == 0
    assert "[WARN] Docker Desktop installed" in capsys.readouterr().err


def test_bootstrap_version_overrides(monkeypatch, tmp_path) -> None:
    seen = {}

    def record(options, settings, *, log):
        seen["options"] = options
        seen["settings"] = settings

    monkeypatch.setattr(cli.bootstrap, "run_bootstrap", record)

    cli.main(
        [
            "bootstrap",
            "--repo-root",
            str(tmp_path),
            "--mode",
            "prod",
            "--k3s-version",
            "v1.30.2+k3s1",
            "--skip-prereqs",
        ]
    )

    assert seen["settings"].k3s_version == "v1.30.2+k3s1"
    assert seen["settings"].rancher_version == "2.13.1"
    assert seen["options"].mode == "prod"
    assert seen["options"].skip_prereqs is True
    assert seen["options"].repo_root == tmp_path.resolve()


def test_rancher_install_applies_flag_overrides(monkeypatch) -> None:
    seen = {}
    monkeypatch.setattr(
        cli.install, "run_install", lambda runner, settings, log: seen.setdefault("s", settings)
    )

    assert cli.main(["rancher", "install", "--hostname", "rancher.lab", "--replicas", "3"]) == 0
    assert seen["s"].rancher_hostname == "rancher.lab"
    assert seen["s"].rancher_replicas == 3
    assert seen["s"].rancher_tls_source == "rancher"


def test_rancher_install_rejects_invalid_replicas(monkeypatch, capsys) -> None:
    monkeypatch.setattr(
        cli.install, "run_install", lambda *args: pytest.fail("install should not start")
    )

    assert cli.main(["rancher", "install", "--replicas", "0"]) == 1
    assert "error: rancher_replicas must be at least 1" in capsys.readouterr().err


def test_rancher_install_failure_reports_error(monkeypatch, capsys) -> None:
    def fail(runner, settings, log):
        raise RancherError("Cannot connect to Kubernetes cluster")

    monkeypatch.setattr(cli.install, "run_install", fail)

    assert cli.main(["rancher", "install"]) == 1
    assert "error: Cannot connect to Kubernetes cluster" in capsys.readouterr().err


def test_create_user_passes_role(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(
        cli.accounts,
        "create_user",
        lambda runner, username, log, role: calls.append((username, role)),
    )

    assert cli.main(["rancher", "account", "create-user", "alice", "cluster-admin"]) == 0
    assert cli.main(["rancher", "account", "create-user", "bob"]) == 0
    assert calls == [("alice", "cluster-admin"), ("bob", "user")]


def test_cloud_init_options_use_settings_country(tmp_path) -> None:
    args = cli.build_parser().parse_args(
        [
            "pi",
            "cloud-init",
            "--hostname",
            "pi-master",
            "--role",
            "master",
            "--ip",
            "192.168.1.100/24",
            "--gateway",
            "192.168.1.1",
            "--output",
            str(tmp_path),
        ]
    )

    options = cli.cloud_init_options(args, Settings(wifi_country="GB"))

    assert options.hostname == "pi-master"
    assert options.role == "master"
    assert options.wifi_country == "GB"
    assert options.static_ip == "192.168.1.100/24"
    assert options.output_dir == tmp_path
    assert options.copy_to is None


def test_script_wrappers_share_cli_arguments() -> None:
    args = bootstrap_script.parse_args(["--platform", "pi", "--cleanup"])
    assert args.platform == "pi"
    assert args.cleanup is True
    assert args.mode == "dev"

    args = pi_prep_script.parse_args(["192.168.1.50", "--join-cluster"])
    assert args.host == "192.168.1.50"
    assert args.join_cluster is True

    args = cloud_init_script.parse_args(["--wifi-ssid", "HomeNet", "--wifi-prehashed"])
    assert args.wifi_ssid == "HomeNet"
    assert args.wifi_prehashed is True
    assert args.role == "worker"


def test_script_wrapper_delegates_to_cli(capsys) -> None:
    assert pi_prep_script.main(["--dry-run"]) == 1
    assert "error: PI_IP_OR_HOSTNAME is required" in capsys.readouterr().err
