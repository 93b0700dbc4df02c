"""Automation helpers for the kube-world homelab platform."""

__version__ = "0.1.0"
