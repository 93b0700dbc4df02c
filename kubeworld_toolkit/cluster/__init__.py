"""Management-cluster bring-up: prerequisites, provisioning, GitOps and apps."""

from .apps import collect_manifests, deploy_core_apps
from .bootstrap import BootstrapOptions, plan_steps, run_bootstrap, verify_installation
from .gitops import FLEET_CRDS, setup_gitops, wait_for_crd, wait_for_fleet_crds
from .preflight import preflight_checks
from .provision import cleanup_existing, first_master_host, setup_mac_cluster, setup_pi_cluster

__all__ = [
    "BootstrapOptions",
    "FLEET_CRDS",
    "cleanup_existing",
    "collect_manifests",
    "deploy_core_apps",
    "first_master_host",
    "plan_steps",
    "preflight_checks",
    "run_bootstrap",
    "setup_gitops",
    "setup_mac_cluster",
    "setup_pi_cluster",
    "verify_installation",
    "wait_for_crd",
    "wait_for_fleet_crds",
]
