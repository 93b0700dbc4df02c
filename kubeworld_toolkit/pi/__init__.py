"""Raspberry Pi provisioning helpers for kube-world nodes."""

from .cloud_init import CloudInitDocuments, CloudInitOptions, build, hash_user_password, wifi_psk
from .prep import PiPreparer, PrepOptions, build_k3s_install_script, run_prep
from .remote import SshTarget

__all__ = [
    "CloudInitDocuments",
    "CloudInitOptions",
    "PiPreparer",
    "PrepOptions",
    "SshTarget",
    "build",
    "build_k3s_install_script",
    "hash_user_password",
    "run_prep",
    "wifi_psk",
]
