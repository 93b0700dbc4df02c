"""SSH/scp command builders for talking to Raspberry Pi nodes."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

DEFAULT_CONNECT_TIMEOUT = 10


@dataclass(slots=True, frozen=True)
class SshTarget:
    host: str
    user: str = "admin"
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    batch_mode: bool = False
    identity: Path | None = None

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}" if self.user else self.host

    def with_options(self, **changes) -> "SshTarget":
        return replace(self, **changes)

    def _options(self) -> list[str]:
        options = [
            "-o",
            f"ConnectTimeout={self.connect_timeout}",
            "-o",
            "StrictHostKeyChecking=accept-new",
        ]
        if self.batch_mode:
            options.extend(["-o", "BatchMode=yes"])
        if self.identity:
            options.extend(["-i", str(self.identity)])
        return options

    def command(self, remote_command: str, *, tty: bool = False) -> list[str]:
        command = ["ssh", *self._options()]
        if tty:
            command.append("-t")
        command.append(self.destination)
        command.append(remote_command)
        return command

    def scp_from(self, remote_path: str, local_path: Path) -> list[str]:
        return ["scp", *self._options(), f"{self.destination}:{remote_path}", str(local_path)]
