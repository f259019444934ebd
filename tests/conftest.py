from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, Iterator

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from monetization.core.settings import S  # noqa: E402
from monetization.core.tables import T  # noqa: E402
from fakes import FakeTable, install_fake_tables  # noqa: E402


@pytest.fixture
def tables() -> Iterator[Dict[str, FakeTable]]:
    fakes, restore = install_fake_tables(T)
    try:
        yield fakes
    finally:
        restore()


@pytest.fixture
def settings() -> Iterator[Any]:
    """Yields a setter for Settings fields; every override is undone after the test."""
    saved: Dict[str, Any] = {}

    def override(**fields: Any) -> None:
        for key, value in fields.items():
            saved.setdefault(key, getattr(S, key))
            object.__setattr__(S, key, value)

    try:
        yield override
    finally:
        for key, value in saved.items():
            object.__setattr__(S, key, value)
