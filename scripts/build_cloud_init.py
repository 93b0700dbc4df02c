"""Generate cloud-init files for a Raspberry Pi SD card boot partition."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from kubeworld_toolkit import cli
from kubeworld_toolkit.pi import cloud_init as core

CloudInitOptions = core.CloudInitOptions
build = core.build
hash_user_password = core.hash_user_password
render_network_config = core.render_network_config
render_user_data = core.render_user_data
wifi_psk = core.wifi_psk

__all__ = [
    "CloudInitOptions",
    "build",
    "hash_user_password",
    "render_network_config",
    "render_user_data",
    "wifi_psk",
    "parse_args",
    "main",
]


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    cli.add_cloud_init_arguments(parser)
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Sequence[str] | None = None) -> int:
    return cli.main(["pi", "cloud-init", *(list(argv) if argv is not None else sys.argv[1:])])


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
