"""
src/orchestrator/models.py

Pydantic models for conversation messages, tool-calling I/O, usage telemetry and audit entries.
"""


import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


Role = Literal["system", "user", "assistant", "tool"]


def _utcnow() -> datetime:

    return datetime.now(timezone.utc)


# --- Tool catalog ---------------------------------------------------------------
class ToolDefinition(BaseModel):

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: Dict[str, Any]

    @property
    def required(self) -> List[str]:

        return list(self.parameters.get("required", []))

    def to_openai(self) -> Dict[str, Any]:
        """Function spec in the shape chat-completion endpoints expect."""

        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolInvocation(BaseModel):

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    raw_arguments: str = "{}"

    def to_wire(self) -> Dict[str, Any]:

        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.raw_arguments},
        }


# --- Messages -------------------------------------------------------------------
class Message(BaseModel):
    """
    One entry of a conversation. Content is usually a string, but a provider
    may hand back segment lists or objects; flatten_content() reduces those.
    """

    model_config = ConfigDict(frozen=True)

    role: Role
    content: Any = ""
    tool_call_id: Optional[str] = None
    tool_calls: List[ToolInvocation] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        """OpenAI-compatible message dict."""

        out: Dict[str, Any] = {"role": self.role, "content": self.content}

        if self.tool_calls:
            out["tool_calls"] = [tc.to_wire() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            out["tool_call_id"] = self.tool_call_id

        return out


class Usage(BaseModel):

    total_tokens: int = 0


class CanonicalResponse(BaseModel):

    message: Message
    usage: Optional[Usage] = None

    @property
    def tokens(self) -> int:

        return self.usage.total_tokens if self.usage else 0


# --- Telemetry ------------------------------------------------------------------
class UsageRecord(BaseModel):

    model_config = ConfigDict(frozen=True)

    date: datetime = Field(default_factory=_utcnow)
    model_id: str
    tokens: int = 0
    duration_ms: int = 0


# --- Tool results & audit -------------------------------------------------------
class ToolResult(BaseModel):

    name: str
    ok: bool
    output: Any = None
    error: Optional[str] = None

    def as_content(self) -> str:
        """Text handed back to the model as the tool message content."""

        if not self.ok:
            return f"Error: {self.error or 'tool failed'}"
        if isinstance(self.output, str):
            return self.output

        return json.dumps(self.output, ensure_ascii=False)


class AuditEntry(BaseModel):

    step: str
    ok: bool
    detail: str
    tool_call: Optional[ToolInvocation] = None
    tool_result: Optional[ToolResult] = None


class TurnResult(BaseModel):

    reply: str
    ok: bool
    messages: List[Message]     # Messages appended to history by this turn
    audit: List[AuditEntry]
    usage: Optional[UsageRecord] = None


# --- Workspace & settings -------------------------------------------------------
class FileEntry(BaseModel):

    model_config = ConfigDict(populate_by_name=True)

    path: str
    is_directory: bool = Field(default=False, alias="isDirectory")

    def to_wire(self) -> Dict[str, Any]:

        return {"path": self.path, "isDirectory": self.is_directory}


class ProviderConfig(BaseModel):

    id: str
    label: str = ""
    url: str
    api_key: str


class Persona(BaseModel):

    id: str
    name: str
    description: str = ""
    system_prompt: str
