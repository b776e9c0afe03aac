"""
src/orchestrator/errors.py

Exception taxonomy for the assistant core.

Provider failures end a turn with a single assistant error message. Tool
failures never leave the dispatcher: they become the tool's result content.
"""


from typing import Optional


class AssistantError(Exception):
    """Base class for every error raised by the assistant core."""


class ProviderResponseError(AssistantError):
    """The provider returned an error payload or a shape we do not recognise."""


class ToolArgumentError(AssistantError):
    """A tool invocation named an unknown tool or carried malformed arguments."""

    def __init__(self, message: str, *, tool: Optional[str] = None):

        super().__init__(message)
        self.tool = tool


class ToolExecutionError(AssistantError):
    """The workspace, store, or command collaborator failed while running a tool."""

    def __init__(self, message: str, *, tool: Optional[str] = None):

        super().__init__(message)
        self.tool = tool


class WorkspaceViolation(ToolExecutionError):
    """A path resolved outside the workspace root."""


class PatchApplicationError(AssistantError):
    """Raised by the strict, hunk-aware patcher only. The forgiving patcher never fails."""


class MaxRoundsExceeded(AssistantError):
    """A single turn used more provider rounds than allowed."""

    def __init__(self, limit: int):

        super().__init__(f"Tool loop exceeded {limit} model rounds without a final answer")
        self.limit = limit


class TurnInProgressError(AssistantError):
    """A second message was submitted while the previous turn was still running."""
