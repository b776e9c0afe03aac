"""
src/tools/commands.py — run shell commands against the workspace

Provides:
- CommandStream: async iterator of output text (stdout and stderr interleaved)
  with a best-effort cancel() that terminates the underlying process
- LocalCommandRunner: asyncio subprocess in the workspace directory
- RemoteCommandRunner: the same over HTTP (POST /local/run, streamed text body)
- collect_output(stream, timeout): drain a stream into one string

Notes:
* Output streaming ends when the process (or HTTP body) closes.
* Closing the stream early (aclose / cancel) kills the process. That is the
  only cancellation there is; the conversation loop itself has none.
"""


import asyncio
import logging
import shlex
from typing import AsyncIterator, List, Optional, Protocol, Sequence

import httpx

from orchestrator.errors import ToolExecutionError


LOGGER = logging.getLogger(__name__)

_CHUNK_SIZE = 4096


def build_command_line(cmd: str, args: Sequence[str] = ()) -> str:
    """Command plus shell-quoted args, ready for a shell."""

    return " ".join([cmd, *(shlex.quote(str(a)) for a in args)])


class CommandStream:
    """
    Output of one command as an async iterator of text chunks.

    Use as `async with runner.run(...) as stream: async for chunk in stream: ...`
    or iterate directly and call aclose() when done.
    """

    def __init__(self, chunks: AsyncIterator[str], *, on_cancel=None):

        self._chunks = chunks
        self._on_cancel = on_cancel
        self.cancelled = False
        self.finished = False

    def __aiter__(self) -> "CommandStream":

        return self

    async def __anext__(self) -> str:

        if self.cancelled:
            raise StopAsyncIteration
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            self.finished = True
            raise

    async def cancel(self) -> None:
        """Terminate the command. Safe to call more than once."""

        if self.cancelled or self.finished:
            return
        self.cancelled = True
        if self._on_cancel is not None:
            await self._on_cancel()

    async def aclose(self) -> None:

        await self.cancel()
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> "CommandStream":

        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:

        await self.aclose()

        return False


class CommandRunner(Protocol):

    def run(self, cmd: str, args: Sequence[str] = (), cwd: Optional[str] = None) -> CommandStream: ...


# --- Local ----------------------------------------------------------------------
class LocalCommandRunner:

    def __init__(self, cwd: str = "."):

        self.cwd = cwd

    def run(self, cmd: str, args: Sequence[str] = (), cwd: Optional[str] = None) -> CommandStream:

        if not cmd or not isinstance(cmd, str):
            raise ToolExecutionError("Missing command")

        line = build_command_line(cmd, args)
        holder: List[asyncio.subprocess.Process] = []

        async def chunks() -> AsyncIterator[str]:
            try:
                proc = await asyncio.create_subprocess_shell(
                    line,
                    cwd=cwd or self.cwd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                )
            except OSError as e:
                raise ToolExecutionError(f"Could not start '{cmd}': {e}") from e
            holder.append(proc)
            LOGGER.info("Started command pid=%s: %s", proc.pid, line)
            while True:
                data = await proc.stdout.read(_CHUNK_SIZE)
                if not data:
                    break
                yield data.decode("utf-8", errors="replace")
            code = await proc.wait()
            LOGGER.info("Command pid=%s exited with %s", proc.pid, code)

        async def kill() -> None:
            if holder and holder[0].returncode is None:
                LOGGER.info("Terminating command pid=%s", holder[0].pid)
                holder[0].kill()
                await holder[0].wait()

        return CommandStream(chunks(), on_cancel=kill)


# --- Remote ---------------------------------------------------------------------
class RemoteCommandRunner:
    """Stream command output from a workspace server's POST /local/run endpoint."""

    def __init__(self, base_url: str, *, token: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):

        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=None)

    def run(self, cmd: str, args: Sequence[str] = (), cwd: Optional[str] = None) -> CommandStream:

        if not cmd or not isinstance(cmd, str):
            raise ToolExecutionError("Missing command")

        body = {"cmd": cmd, "args": list(args)}
        if cwd:
            body["cwd"] = cwd

        async def chunks() -> AsyncIterator[str]:
            try:
                async with self._client.stream("POST", "/local/run", json=body) as resp:
                    if resp.is_error:
                        detail = (await resp.aread()).decode("utf-8", errors="replace")
                        raise ToolExecutionError(detail or f"Command failed to start ({resp.status_code})")
                    async for text in resp.aiter_text():
                        yield text
            except httpx.HTTPError as e:
                raise ToolExecutionError(f"Command server unreachable: {e}") from e

        return CommandStream(chunks())


async def collect_output(stream: CommandStream, *, timeout: Optional[float] = None) -> str:
    """
    Drain `stream` into one string.

    On timeout the command is cancelled and a marker line is appended to what
    was captured so far.
    """

    parts: List[str] = []

    async def drain() -> None:
        async for chunk in stream:
            parts.append(chunk)

    try:
        if timeout:
            await asyncio.wait_for(drain(), timeout)
        else:
            await drain()
    except asyncio.TimeoutError:
        parts.append(f"\n[command cancelled after {timeout:g}s]")
    finally:
        await stream.aclose()

    return "".join(parts)
