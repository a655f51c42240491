# SPDX-License-Identifier: MIT
"""Pytest fixtures and environment setup.

Ensures the repository root is importable so tests resolve the in-tree
``sqlmarshal`` package without installing it, and keeps ``SQLMARSHAL_*``
variables from the developer's shell out of the settings under test.
"""

from __future__ import annotations

import os
import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _isolate_settings_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("SQLMARSHAL_"):
            monkeypatch.delenv(key, raising=False)
