"""
src/orchestrator/prompts.py

System prompts: the default assistant prompt, persona presets, and the file summary prompt.
"""


from typing import Dict, Optional

from orchestrator.models import Persona


DEFAULT_SYSTEM_PROMPT = (
    "You are an AI coding assistant. "
    "Use the provided tools to read, write, create, delete, and summarize files. "
    "Keep responses concise."
)

PERSONAS: Dict[str, Persona] = {
    "architect": Persona(
        id="architect",
        name="Architect",
        description="High-level app designer who plans folder structure and components.",
        system_prompt=(
            "You are an expert software architect and senior engineer. "
            "You design project structures, components, and stepwise implementation plans. "
            "Use the provided tools to inspect and change the workspace."
        ),
    ),
    "pixelmancer": Persona(
        id="pixelmancer",
        name="PixelMancer",
        description="Obsessed with aesthetic UI, motion, and micro-interactions.",
        system_prompt=(
            "You are a world-class UI engineer. You focus on layout, visual hierarchy, "
            "animation, and accessibility. Use the provided tools to edit files directly."
        ),
    ),
}


def system_prompt_for(persona_id: Optional[str], personas: Optional[Dict[str, Persona]] = None) -> str:
    """Prompt of the active persona, or the default assistant prompt."""

    persona = (personas or PERSONAS).get(persona_id or "")

    return persona.system_prompt if persona else DEFAULT_SYSTEM_PROMPT


def summary_prompt(content: str) -> str:

    return f"Summarize the following file in bullet points:\n\n{content}"
