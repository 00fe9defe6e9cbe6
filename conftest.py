from __future__ import annotations

import importlib.util
import os

import pytest

# BDD scenarios depend on the optional pytest-bdd plugin.
# Skip collecting them when it is not installed.
if importlib.util.find_spec("pytest_bdd") is None:
    collect_ignore_glob = ["tests/bdd/*"]


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("MATCHMAKER_") or name == "GEMINI_API_KEY":
            monkeypatch.delenv(name)
