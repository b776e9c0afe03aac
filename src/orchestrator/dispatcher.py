"""
src/orchestrator/dispatcher.py

Tool catalog and dispatcher: parses a ToolInvocation, runs the matching
workspace operation, and always returns a ToolResult (failures included), so
the conversation can carry on after a tool error.
"""


import json
import logging
from enum import Enum
from typing import Any, Dict, List

from context.loader import IdeContext
from orchestrator.errors import AssistantError, ToolArgumentError, ToolExecutionError
from orchestrator.llm_openai import ChatProvider
from orchestrator.models import ToolDefinition, ToolInvocation, ToolResult
from tools import summaries
from tools.commands import collect_output
from tools.patch import patch_text


LOGGER = logging.getLogger(__name__)


class ToolName(str, Enum):

    LIST_FILES = "list_files"
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    CREATE_FILE = "create_file"
    DELETE_ENTRY = "delete_entry"
    APPLY_PATCH = "apply_patch"
    RUN_COMMAND = "run_command"
    SUMMARIZE_FILE = "summarize_file"
    GET_SUMMARY = "get_summary"


# -------- Tool catalog ---------------------------------------------------------
def _tool_spec(name: ToolName, description: str, parameters: Dict[str, Any]) -> ToolDefinition:
    """Build one catalog entry with an object-typed JSON schema."""

    return ToolDefinition(
        name=name.value,
        description=description,
        parameters={
            "type": "object",
            "properties": parameters.get("properties", {}),
            "required": parameters.get("required", []),
        },
    )

def _path(description: str = "File path") -> Dict[str, Any]:

    return {"type": "string", "description": description}


TOOL_SPECS: Dict[ToolName, ToolDefinition] = {
    ToolName.LIST_FILES: _tool_spec(
        ToolName.LIST_FILES,
        "List files in a directory",
        {"properties": {"dir": _path("Directory path")}, "required": ["dir"]},
    ),
    ToolName.READ_FILE: _tool_spec(
        ToolName.READ_FILE,
        "Read a file",
        {"properties": {"path": _path()}, "required": ["path"]},
    ),
    ToolName.WRITE_FILE: _tool_spec(
        ToolName.WRITE_FILE,
        "Write to a file",
        {
            "properties": {"path": _path(), "content": {"type": "string", "description": "File content"}},
            "required": ["path", "content"],
        },
    ),
    ToolName.CREATE_FILE: _tool_spec(
        ToolName.CREATE_FILE,
        "Create a new file",
        {"properties": {"path": _path()}, "required": ["path"]},
    ),
    ToolName.DELETE_ENTRY: _tool_spec(
        ToolName.DELETE_ENTRY,
        "Delete a file or directory",
        {"properties": {"path": _path("Path to delete")}, "required": ["path"]},
    ),
    ToolName.APPLY_PATCH: _tool_spec(
        ToolName.APPLY_PATCH,
        "Apply a unified diff to a file",
        {
            "properties": {"path": _path(), "diff": {"type": "string", "description": "Unified diff text"}},
            "required": ["path", "diff"],
        },
    ),
    ToolName.RUN_COMMAND: _tool_spec(
        ToolName.RUN_COMMAND,
        "Run a shell command in the project",
        {
            "properties": {
                "cmd": {"type": "string", "description": "Command"},
                "args": {"type": "array", "items": {"type": "string"}, "description": "Arguments"},
            },
            "required": ["cmd"],
        },
    ),
    ToolName.SUMMARIZE_FILE: _tool_spec(
        ToolName.SUMMARIZE_FILE,
        "Generate a summary of a file",
        {"properties": {"path": _path()}, "required": ["path"]},
    ),
    ToolName.GET_SUMMARY: _tool_spec(
        ToolName.GET_SUMMARY,
        "Retrieve a stored summary of a file",
        {"properties": {"path": _path()}, "required": ["path"]},
    ),
}


def get_tool_specs() -> List[Dict[str, Any]]:
    """Catalog in the function-tool format sent to the provider."""

    return [spec.to_openai() for spec in TOOL_SPECS.values()]


# -------- Argument parsing -----------------------------------------------------
def resolve_tool(name: str) -> ToolName:

    try:
        return ToolName(name)
    except ValueError:
        raise ToolArgumentError(f"Unknown tool: {name}", tool=name) from None

def parse_arguments(invocation: ToolInvocation, spec: ToolDefinition) -> Dict[str, Any]:
    """
    JSON-decode the invocation's arguments and check the schema's required keys.

    Raises:
        ToolArgumentError: invalid JSON, a non-object payload, or a missing key.
    """

    raw = invocation.raw_arguments or "{}"

    try:
        args = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ToolArgumentError(f"Invalid JSON arguments for {spec.name}: {e.msg}", tool=spec.name) from e

    if not isinstance(args, dict):
        raise ToolArgumentError(f"Arguments for {spec.name} must be a JSON object", tool=spec.name)

    missing = [key for key in spec.required if args.get(key) is None]

    if missing:
        raise ToolArgumentError(f"Missing required argument(s) for {spec.name}: {', '.join(missing)}", tool=spec.name)

    return args


# -------- Dispatcher -----------------------------------------------------------
class ToolDispatcher:

    def __init__(self, ctx: IdeContext, provider: ChatProvider):

        self.ctx = ctx
        self.provider = provider

    async def dispatch(self, invocation: ToolInvocation) -> ToolResult:
        """Run one invocation. Never raises: failures come back as ToolResult(ok=False)."""

        try:
            tool = resolve_tool(invocation.name)
            args = parse_arguments(invocation, TOOL_SPECS[tool])
            output = await self._execute(tool, args)
            LOGGER.info("Tool %s (%s) ok", invocation.name, invocation.id)
            return ToolResult(name=invocation.name, ok=True, output=output)
        except AssistantError as e:
            LOGGER.info("Tool %s (%s) failed: %s", invocation.name, invocation.id, e)
            return ToolResult(name=invocation.name, ok=False, error=str(e))
        except Exception as e:
            LOGGER.exception("Tool %s (%s) crashed", invocation.name, invocation.id)
            return ToolResult(name=invocation.name, ok=False, error=str(e) or type(e).__name__)

    async def _execute(self, tool: ToolName, args: Dict[str, Any]) -> str:

        if tool is ToolName.LIST_FILES:
            return await self._list_files(args["dir"])
        elif tool is ToolName.READ_FILE:
            return await self.ctx.files_store.read(args["path"])
        elif tool is ToolName.WRITE_FILE:
            await self.ctx.files_store.write(args["path"], str(args["content"]))
            return "OK"
        elif tool is ToolName.CREATE_FILE:
            await self.ctx.files_store.create(args["path"], False)
            return "Created"
        elif tool is ToolName.DELETE_ENTRY:
            await self.ctx.files_store.delete(args["path"])
            return "Deleted"
        elif tool is ToolName.APPLY_PATCH:
            return await self._apply_patch(args["path"], str(args["diff"]))
        elif tool is ToolName.RUN_COMMAND:
            return await self._run_command(args["cmd"], args.get("args") or [])
        elif tool is ToolName.SUMMARIZE_FILE:
            return await summaries.summarize_file(
                path=args["path"],
                files=self.ctx.files_store,
                kv=self.ctx.kv,
                provider=self.provider,
                model=self.ctx.model_id,
            )
        elif tool is ToolName.GET_SUMMARY:
            summary = await summaries.get_summary(self.ctx.kv, args["path"])
            return summary if summary is not None else "No summary"

        raise ToolArgumentError(f"Unhandled tool: {tool.value}", tool=tool.value)

    async def _list_files(self, dir: str) -> str:

        entries = await self.ctx.files_store.list(dir)

        if self.ctx.is_project_root(dir):
            self.ctx.files = list(entries)

        return json.dumps([e.to_wire() for e in entries], ensure_ascii=False)

    async def _apply_patch(self, path: str, diff: str) -> str:

        current = await self.ctx.files_store.read(path)
        updated = patch_text(current, diff, strict=self.ctx.strict_patches)
        await self.ctx.files_store.write(path, updated)

        return "Patch applied"

    async def _run_command(self, cmd: str, cmd_args: Any) -> str:

        if not isinstance(cmd_args, list):
            raise ToolArgumentError("run_command 'args' must be an array of strings", tool=ToolName.RUN_COMMAND.value)

        stream = self.ctx.commands.run(cmd, [str(a) for a in cmd_args], self.ctx.project_root)

        try:
            return await collect_output(stream, timeout=self.ctx.command_timeout)
        except OSError as e:
            raise ToolExecutionError(str(e), tool=ToolName.RUN_COMMAND.value) from e
