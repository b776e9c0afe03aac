"""
src/tools/summaries.py — per-file summaries

Provides:
- summarize_file(...): ask the model for a bullet summary of a file and persist it
- save_summary / get_summary: read/write "summary:<path>" in the key-value store
"""


import logging
from typing import Optional

from config import summary_key
from context.store import KeyValueStore
from orchestrator.errors import ToolExecutionError
from orchestrator.llm_openai import ChatProvider
from orchestrator.normalizer import flatten_content, normalize_response
from orchestrator.prompts import summary_prompt
from tools.files import FileStore


LOGGER = logging.getLogger(__name__)


async def save_summary(kv: KeyValueStore, path: str, summary: str) -> None:

    await kv.set(summary_key(path), summary)

async def get_summary(kv: KeyValueStore, path: str) -> Optional[str]:
    """Stored summary for `path`, or None when there is none (or the store fails)."""

    try:
        summary = await kv.get(summary_key(path))
    except Exception:
        LOGGER.warning("Summary lookup failed for %s", path, exc_info=True)
        return None

    return summary or None

async def summarize_file(
        *,
        path: str,
        files: FileStore,
        kv: KeyValueStore,
        provider: ChatProvider,
        model: str,
) -> str:
    """
    Read `path`, request a summary from the model, store it under summary:<path>.

    Returns:
        The summary text.

    Raises:
        ToolExecutionError: unreadable file or an empty summary.
        ProviderResponseError: the provider call itself failed.
    """

    content = await files.read(path)
    raw = await provider.chat([{"role": "system", "content": summary_prompt(content)}], model=model)
    summary = flatten_content(normalize_response(raw).message.content).strip()

    if not summary:
        raise ToolExecutionError(f"Model returned an empty summary for {path}")

    await save_summary(kv, path, summary)
    LOGGER.info("Stored summary for %s (%d chars)", path, len(summary))

    return summary
