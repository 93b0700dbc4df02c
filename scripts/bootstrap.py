"""Bring up the kube-world management cluster, Rancher and Fleet GitOps."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from kubeworld_toolkit import cli
from kubeworld_toolkit.cluster import bootstrap as core

BootstrapOptions = core.BootstrapOptions
plan_steps = core.plan_steps
run_bootstrap = core.run_bootstrap
verify_installation = core.verify_installation

__all__ = [
    "BootstrapOptions",
    "plan_steps",
    "run_bootstrap",
    "verify_installation",
    "parse_args",
    "main",
]


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    cli.add_bootstrap_arguments(parser)
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Sequence[str] | None = None) -> int:
    return cli.main(["bootstrap", *(list(argv) if argv is not None else sys.argv[1:])])


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
