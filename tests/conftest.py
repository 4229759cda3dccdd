from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    """
    Ensure `src/` is on sys.path so tests can import `ai_canvas_studio`
    without requiring an editable install.
    """
    repo_root = Path(__file__).resolve().parents[1]
    src_root = repo_root / "src"
    sys.path.insert(0, str(src_root))


@pytest.fixture
def registry():
    """The global provider registry, reset to built-in cards and defaults."""
    from ai_canvas_studio.providers.registry import get_registry

    reg = get_registry()
    reg.reset()
    yield reg
    reg.reset()
