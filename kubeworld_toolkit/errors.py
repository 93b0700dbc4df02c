"""Exception types shared by the kube-world workflows."""

from __future__ import annotations


class BootstrapError(RuntimeError):
    """Raised when a workflow cannot complete."""


class RestartRequired(BootstrapError):
    """Raised when the user must finish a manual step and re-run the workflow."""


class PollTimeout(BootstrapError):
    """Raised when a readiness check never succeeds within its attempt budget."""

    def __init__(self, description: str, attempts: int, interval: float):
        self.description = description
        self.attempts = attempts
        self.interval = interval
        super().__init__(
            f"Timed out waiting for {description} "
            f"after {attempts} attempts every {interval:g}s"
        )


class CloudInitError(BootstrapError):
    """Raised when cloud-init files cannot be built."""


class PiPrepError(BootstrapError):
    """Raised when a Raspberry Pi cannot be prepared or joined."""


class RancherError(BootstrapError):
    """Raised when the Rancher installation cannot proceed."""


class AccountError(BootstrapError):
    """Raised when Rancher credentials cannot be managed."""
