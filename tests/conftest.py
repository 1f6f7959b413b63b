"""Pytest configuration for test isolation.

Engine configuration is read from ``RECON_*`` variables and the store from
``DATABASE_URL``; a developer's shell or ``.env`` must not leak into tests.
An autouse fixture clears those variables for every test and disposes the
shared SQLAlchemy engine afterwards so each test can point at its own SQLite
file.
"""

from __future__ import annotations

import os
from collections.abc import Iterator

import pytest

from db.client import reset_engine


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in list(os.environ):
        if name.startswith("RECON_") or name == "DATABASE_URL":
            monkeypatch.delenv(name, raising=False)
    reset_engine()
    yield
    reset_engine()
