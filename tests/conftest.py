import subprocess

import pytest

from helpers import FakeTools, make_app


@pytest.fixture
def tools(monkeypatch):
    fake = FakeTools()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake


@pytest.fixture
def app(tmp_path):
    return make_app(tmp_path / "Codex.app")
