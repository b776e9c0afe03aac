"""
src/app.py

Minimal gradio host for the assistant core: a chat box plus persona, model and
backend selectors. All behaviour lives in orchestrator.router.Conversation.
"""


import logging
from typing import Dict, List, Optional, Tuple

import gradio as gr

import config
from config import Backend
from context.loader import load_context
from orchestrator.errors import TurnInProgressError
from orchestrator.llm_openai import GatewayProvider
from orchestrator.prompts import PERSONAS
from orchestrator.router import Conversation


LOGGER = logging.getLogger(__name__)

APP_TITLE = "Workbench Assistant"
APP_DESC = (
    "Ask the model to refactor, generate components, or manage files. "
    "It can list, read, write, patch and delete workspace files, run commands, and keep file summaries."
)
DEFAULT_PERSONA_LABEL = "Default assistant"

_SESSION: Optional[Conversation] = None


def get_conversation() -> Conversation:
    """Session conversation, created on first use and restored from the store."""

    global _SESSION

    if _SESSION is None:
        _SESSION = Conversation(load_context(), GatewayProvider())

    return _SESSION

def attach_conversation(conv: Optional[Conversation]) -> None:

    global _SESSION
    _SESSION = conv

def _persona_choices() -> List[Tuple[str, str]]:

    return [(DEFAULT_PERSONA_LABEL, "")] + [(p.name, p.id) for p in PERSONAS.values()]

def chat_view(conv: Conversation) -> List[Dict[str, str]]:
    """History as chatbot rows; tool traffic and empty tool-request turns are hidden."""

    rows = []

    for m in conv.ctx.history:
        if m.role in ("user", "assistant") and not m.tool_calls and isinstance(m.content, str):
            rows.append({"role": m.role, "content": m.content})

    return rows

async def handle_message(message: str, persona_id: str, model_id: str) -> Tuple[str, List[Dict[str, str]]]:
    """Run one turn with the selected persona/model; returns (cleared input, chat rows)."""

    conv = get_conversation()
    conv.ctx.persona_id = persona_id or None
    conv.ctx.model_id = model_id or config.DEFAULT_MODEL

    try:
        await conv.submit(message)
    except TurnInProgressError:
        gr.Warning("Still working on the previous message.")
        return message, chat_view(conv)

    return "", chat_view(conv)

async def handle_load() -> List[Dict[str, str]]:

    conv = get_conversation()
    await conv.load_history()

    return chat_view(conv)

async def handle_clear() -> List[Dict[str, str]]:

    conv = get_conversation()
    await conv.clear()

    return []

def app():
    with gr.Blocks(title=APP_TITLE) as demo:
        gr.Markdown(f"# {APP_TITLE}")
        gr.Markdown(APP_DESC)

        with gr.Row():
            persona_dd = gr.Dropdown(
                label="Persona",
                choices=_persona_choices(),
                value="",
                info="System prompt preset for the conversation."
            )
            model_dd = gr.Dropdown(
                label="Model",
                choices=config.MODEL_CHOICES,
                value=config.DEFAULT_MODEL,
                allow_custom_value=True,
            )
            gr.Markdown(f"Backend: **{config.DEFAULT_BACKEND.value}** (set ASSISTANT_BACKEND to {', '.join(b.value for b in Backend)})")

        chatbot = gr.Chatbot(type="messages", height=520)
        msg = gr.Textbox(
            label="Message",
            placeholder="Ask the model to refactor, generate components, or manage files...",
            lines=2
        )
        with gr.Row():
            send = gr.Button("Send", variant="primary")
            clear = gr.Button("Clear history")

        send.click(fn=handle_message, inputs=[msg, persona_dd, model_dd], outputs=[msg, chatbot])
        msg.submit(fn=handle_message, inputs=[msg, persona_dd, model_dd], outputs=[msg, chatbot])
        clear.click(fn=handle_clear, inputs=[], outputs=[chatbot])
        demo.load(fn=handle_load, inputs=[], outputs=[chatbot])

    return demo


if __name__ == "__main__":

    config.setup_logging()
    app().launch()

# EOF
