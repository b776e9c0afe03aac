"""
src/context/loader.py

IdeContext: the explicit session state handed to the Conversation and the
ToolDispatcher (history, persona, model/provider choice, backend flag and
the collaborators behind it). load_context() assembles one from config.
"""


import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import config
from config import Backend
from context.store import JsonFileStore, KeyValueStore
from orchestrator.models import FileEntry, Message, Persona, ProviderConfig
from orchestrator.prompts import PERSONAS, system_prompt_for
from tools.commands import CommandRunner, LocalCommandRunner, RemoteCommandRunner
from tools.files import FileStore, open_file_store


LOGGER = logging.getLogger(__name__)


@dataclass
class IdeContext:

    files_store: FileStore
    kv: KeyValueStore
    commands: CommandRunner
    backend: Backend = Backend.LOCAL
    project_root: str = "./"
    model_id: str = config.DEFAULT_MODEL
    persona_id: Optional[str] = None
    personas: Dict[str, Persona] = field(default_factory=lambda: dict(PERSONAS))
    providers: List[ProviderConfig] = field(default_factory=list)
    provider_id: Optional[str] = None
    strict_patches: bool = config.STRICT_PATCHES
    command_timeout: Optional[float] = config.COMMAND_TIMEOUT
    history_key: str = config.HISTORY_KEY
    files: List[FileEntry] = field(default_factory=list)
    _history: List[Message] = field(default_factory=list, repr=False)

    # --- History (append-only) ----------------------------------------------
    @property
    def history(self) -> List[Message]:
        """Copy of the conversation so far; callers cannot reorder or drop entries."""

        return list(self._history)

    def append_history(self, messages: Sequence[Message]) -> None:

        self._history.extend(messages)

    def replace_history(self, messages: Sequence[Message]) -> None:
        """Full-list replace, used when restoring from the store."""

        self._history = list(messages)

    # --- Persona / provider ---------------------------------------------------
    @property
    def system_prompt(self) -> str:

        return system_prompt_for(self.persona_id, self.personas)

    def add_persona(self, persona: Persona) -> None:

        self.personas[persona.id] = persona

    def add_provider(self, provider: ProviderConfig) -> None:

        self.providers = [p for p in self.providers if p.id != provider.id] + [provider]

    def is_project_root(self, dir: str) -> bool:

        def norm(p: str) -> str:
            return (p or ".").strip().rstrip("/").removeprefix("./") or "."

        return norm(dir) == norm(self.project_root)


def load_context(
        *,
        backend: Optional[Backend] = None,
        project_root: Optional[str] = None,
        kv: Optional[KeyValueStore] = None,
) -> IdeContext:
    """
    Build an IdeContext from config, opening the file store and command runner
    for the selected backend.
    """

    backend = backend or config.DEFAULT_BACKEND
    root = project_root or config.PROJECT_ROOT

    files_store = open_file_store(backend, root=root, base_url=config.REMOTE_URL, token=config.REMOTE_TOKEN)

    if backend == Backend.REMOTE:
        commands: CommandRunner = RemoteCommandRunner(config.REMOTE_URL, token=config.REMOTE_TOKEN)
    else:
        commands = LocalCommandRunner(cwd=root)

    LOGGER.info("Loaded context: backend=%s root=%s", backend.value, root)

    return IdeContext(
        files_store=files_store,
        kv=kv or JsonFileStore(config.STORE_PATH),
        commands=commands,
        backend=backend,
        project_root=root,
    )
