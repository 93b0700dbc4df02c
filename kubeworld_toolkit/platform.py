"""Detect which kind of host the bootstrap is running on."""

from __future__ import annotations

import platform as _platform
from pathlib import Path

from .errors import BootstrapError

CPUINFO_PATH = Path("/proc/cpuinfo")
PLATFORMS = ("mac-arm64", "mac-amd64", "pi", "linux-arm64", "linux-amd64")


def detect_platform(
    system: str | None = None,
    machine: str | None = None,
    *,
    cpuinfo_path: Path = CPUINFO_PATH,
) -> str:
    system = (system or _platform.system()).lower()
    machine = machine or _platform.machine()

    if system == "darwin":
        return "mac-arm64" if machine == "arm64" else "mac-amd64"
    if system == "linux":
        if machine in ("aarch64", "arm64"):
            return "pi" if _is_raspberry_pi(cpuinfo_path) else "linux-arm64"
        return "linux-amd64"
    raise BootstrapError(f"Unsupported OS: {system}")


def resolve_platform(requested: str | None, **detect_kwargs) -> str:
    """Turn a ``--platform`` value into a concrete platform name.

    An empty value auto-detects. ``mac`` is narrowed to the detected Mac
    architecture, defaulting to ``mac-arm64`` when not running on a Mac.
    """

    if not requested:
        return detect_platform(**detect_kwargs)
    if requested == "mac":
        detected = detect_platform(**detect_kwargs)
        return detected if detected.startswith("mac-") else "mac-arm64"
    return requested


def is_mac(platform_name: str) -> bool:
    return platform_name == "mac" or platform_name.startswith("mac-")


def is_linux_family(platform_name: str) -> bool:
    return platform_name == "pi" or platform_name.startswith("linux-")


def _is_raspberry_pi(cpuinfo_path: Path) -> bool:
    try:
        return "Raspberry Pi" in cpuinfo_path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return False
