"""Test fixtures and configuration helpers."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

# Keep the project root importable so ``scripts`` and ``tests.helpers`` resolve
# without an editable install.
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tests.helpers.fake_runner import FakeRunner  # noqa: E402
from kubeworld_toolkit.settings import Settings  # noqa: E402


@pytest.fixture
def log() -> logging.Logger:
    logger = logging.getLogger("kubeworld.tests")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def settings() -> Settings:
    return Settings()

