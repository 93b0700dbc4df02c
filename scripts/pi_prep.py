"""Prepare a Raspberry Pi over SSH and optionally join it to the kube-world cluster."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from kubeworld_toolkit import cli
from kubeworld_toolkit.pi import prep as core

PiPreparer = core.PiPreparer
PrepOptions = core.PrepOptions
build_k3s_install_script = core.build_k3s_install_script
plan_steps = core.plan_steps
run_prep = core.run_prep
update_inventory = core.update_inventory

__all__ = [
    "PiPreparer",
    "PrepOptions",
    "build_k3s_install_script",
    "plan_steps",
    "run_prep",
    "update_inventory",
    "parse_args",
    "main",
]


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    cli.add_prep_arguments(parser)
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Sequence[str] | None = None) -> int:
    return cli.main(["pi", "prep", *(list(argv) if argv is not None else sys.argv[1:])])


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
