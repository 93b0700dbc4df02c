"""Utility helpers for running subprocesses consistently."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from shutil import which

LOGGER = logging.getLogger("kubeworld.runner")


@dataclass(slots=True)
class CommandError(RuntimeError):
    """Raised when a subprocess exits with a non-zero status."""

    command: Sequence[str]
    returncode: int
    stderr: str | None = None

    def __str__(self) -> str:
        message = f"{format_command(self.command)} exited with status {self.returncode}"
        if self.stderr:
            stderr = self.stderr.strip()
            if stderr:
                message = f"{message}\n{stderr}"
        return message


def format_command(command: Sequence[str]) -> str:
    """Render a subprocess command for display or logging."""

    return " ".join(shlex.quote(part) for part in command)


def command_exists(name: str) -> bool:
    return which(name) is not None


def _merge_env(env: Mapping[str, str] | None) -> Mapping[str, str] | None:
    if env is None:
        return None
    merged = os.environ.copy()
    merged.update(env)
    return merged


class CommandRunner:
    """Execute commands against the management machine with optional dry-run support.

    ``env`` holds overrides layered on top of ``os.environ`` for every command the
    runner starts. Workflows mutate it as they go (``KUBECONFIG`` after fetching a
    Pi kubeconfig, ``ANSIBLE_CONFIG`` before running playbooks).
    """

    def __init__(
        self,
        *,
        cwd: Path | None = None,
        dry_run: bool = False,
        env: Mapping[str, str] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.cwd = cwd
        self.dry_run = dry_run
        self.env: dict[str, str] = dict(env or {})
        self.logger = logger or LOGGER

    def run(
        self,
        command: Sequence[str],
        *,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Run ``command`` and raise :class:`CommandError` when it fails.

        Output is streamed to the terminal so long-running tools (helm, ansible)
        stay visible.
        """

        if self._skip(command):
            return
        result = subprocess.run(
            list(command),
            cwd=self._cwd(),
            env=self._env(env),
            check=False,
            text=True,
            input=input,
            stderr=subprocess.PIPE,
        )
        if result.returncode != 0:
            raise CommandError(command, result.returncode, stderr=result.stderr)

    def capture(self, command: Sequence[str], *, input: str | None = None) -> str:
        """Run ``command`` and return its stripped stdout."""

        if self._skip(command):
            return ""
        result = subprocess.run(
            list(command),
            cwd=self._cwd(),
            env=self._env(None),
            check=False,
            text=True,
            input=input,
            capture_output=True,
        )
        if result.returncode != 0:
            raise CommandError(command, result.returncode, stderr=result.stderr)
        return (result.stdout or "").strip()

    def succeeds(self, command: Sequence[str], *, timeout: float | None = None) -> bool:
        """Return whether ``command`` exits zero. Never raises for command failures."""

        if self._skip(command):
            return True
        try:
            result = subprocess.run(
                list(command),
                cwd=self._cwd(),
                env=self._env(None),
                check=False,
                text=True,
                capture_output=True,
                timeout=timeout,
            )
        except FileNotFoundError:
            self.logger.debug("command not found: %s", command[0])
            return False
        except subprocess.TimeoutExpired:
            self.logger.debug("command timed out after %ss: %s", timeout, format_command(command))
            return False
        return result.returncode == 0

    def apply_manifest(self, manifest: str) -> None:
        """Pipe a YAML document to ``kubectl apply -f -``."""

        self.run(["kubectl", "apply", "-f", "-"], input=manifest)

    def _skip(self, command: Sequence[str]) -> bool:
        printable = format_command(command)
        if self.dry_run:
            self.logger.info("DRY-RUN: %s", printable)
            return True
        self.logger.debug("$ %s", printable)
        return False

    def _cwd(self) -> str | None:
        return str(self.cwd) if self.cwd is not None else None

    def _env(self, extra: Mapping[str, str] | None) -> Mapping[str, str] | None:
        if not self.env and not extra:
            return None
        overrides = dict(self.env)
        if extra:
            overrides.update(extra)
        return _merge_env(overrides)
