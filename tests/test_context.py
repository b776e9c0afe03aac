"""Tests for the IDE context object and ambient setup."""

from __future__ import annotations

import logging

import pytest

import config
from config import Backend
from context.loader import load_context
from context.store import MemoryStore
from orchestrator.models import Message, Persona, ProviderConfig
from tools.commands import LocalCommandRunner, RemoteCommandRunner
from tools.files import LocalFileStore, RemoteFileStore


def test_load_context_local(tmp_path):
    ctx = load_context(backend=Backend.LOCAL, project_root=str(tmp_path), kv=MemoryStore())

    assert isinstance(ctx.files_store, LocalFileStore)
    assert isinstance(ctx.commands, LocalCommandRunner)
    assert ctx.commands.cwd == str(tmp_path)
    assert ctx.history == []


def test_load_context_remote():
    ctx = load_context(backend=Backend.REMOTE, project_root="./", kv=MemoryStore())

    assert isinstance(ctx.files_store, RemoteFileStore)
    assert isinstance(ctx.commands, RemoteCommandRunner)


def test_history_is_append_only_copy(ctx):
    ctx.append_history([Message(role="user", content="hi")])

    snapshot = ctx.history
    snapshot.clear()

    assert len(ctx.history) == 1


@pytest.mark.parametrize("listing, expected", [(".", False), ("src", False)])
def test_is_project_root_for_subdirectories(ctx, listing, expected):
    assert ctx.is_project_root(listing) is expected


def test_is_project_root_normalizes_prefix_and_slash(ctx):
    ctx.project_root = "./"

    assert ctx.is_project_root(".")
    assert ctx.is_project_root("./")
    assert not ctx.is_project_root("./src")


def test_personas_and_providers(ctx):
    ctx.add_persona(Persona(id="terse", name="Terse", system_prompt="Answer in one line."))
    ctx.persona_id = "terse"

    assert ctx.system_prompt == "Answer in one line."

    ctx.add_provider(ProviderConfig(id="p", label="A", url="http://a", api_key="k"))
    ctx.add_provider(ProviderConfig(id="p", label="B", url="http://b", api_key="k"))

    assert [p.label for p in ctx.providers] == ["B"]


def test_setup_logging_writes_rotating_file(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level

    try:
        log_path = config.setup_logging(logging.DEBUG, log_dir=tmp_path, console=False)
        logging.getLogger("workbench.test").info("hello log")
        for handler in root.handlers:
            handler.flush()

        assert log_path == tmp_path / "assistant.log"
        assert "| INFO     | workbench.test | hello log" in log_path.read_text(encoding="utf-8")
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
