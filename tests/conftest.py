"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from context.loader import IdeContext
from context.store import MemoryStore
from helpers import FakeProvider
from tools.commands import LocalCommandRunner
from tools.files import LocalFileStore


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "ws"
    (root / "src").mkdir(parents=True)
    (root / "src" / "main.py").write_text("a\nb\nc", encoding="utf-8")
    (root / "README.md").write_text("# demo\n", encoding="utf-8")
    return root


@pytest.fixture
def kv() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def ctx(workspace: Path, kv: MemoryStore) -> IdeContext:
    return IdeContext(
        files_store=LocalFileStore(workspace),
        kv=kv,
        commands=LocalCommandRunner(cwd=str(workspace)),
        project_root=str(workspace),
        model_id="test-model",
        command_timeout=10.0,
        strict_patches=False,
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()
