"""
src/tools/files.py — workspace file stores

Provides:
- FileStore: the async contract the dispatcher uses (list/read/write/create/delete)
- LocalFileStore(root): direct disk access, confined to `root`
- RemoteFileStore(base_url): the same operations over HTTP (POST /fs/<op>, JSON bodies)
- open_file_store(backend, ...): pick one from the backend flag

Design notes:
* Both stores raise ToolExecutionError (or WorkspaceViolation) on failure; the
  dispatcher turns those into tool result text.
* Local paths may be relative to the root or absolute-inside-the-root. Anything
  that resolves outside the root is refused.
"""


import asyncio
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import httpx

from config import Backend
from orchestrator.errors import ToolExecutionError, WorkspaceViolation
from orchestrator.models import FileEntry


class FileStore(Protocol):

    async def list(self, dir: str) -> List[FileEntry]: ...

    async def read(self, path: str) -> str: ...

    async def write(self, path: str, content: str) -> None: ...

    async def create(self, path: str, is_directory: bool = False) -> None: ...

    async def delete(self, path: str) -> None: ...


# --- Local disk -----------------------------------------------------------------
class LocalFileStore:

    def __init__(self, root: str | Path = ".", *, max_read_bytes: int = 2_000_000):

        self.root = Path(root).expanduser().resolve()
        self.max_read_bytes = max_read_bytes

    def resolve(self, path: str) -> Path:
        """Resolve a user/model supplied path within the workspace root."""

        raw = Path(path or ".").expanduser()
        candidate = (raw if raw.is_absolute() else self.root / raw).resolve()

        try:
            candidate.relative_to(self.root)
        except ValueError as e:
            raise WorkspaceViolation(f"Path escapes workspace: {path}") from e

        return candidate

    def _rel(self, p: Path) -> str:

        return p.relative_to(self.root).as_posix() or "."

    # Sync bodies, run off the event loop
    def _list(self, dir: str) -> List[FileEntry]:

        p = self.resolve(dir)

        if not p.exists():
            raise ToolExecutionError(f"No such directory: {dir}")
        if not p.is_dir():
            raise ToolExecutionError(f"Not a directory: {dir}")

        children = sorted(p.iterdir(), key=lambda c: c.name.lower())

        return [FileEntry(path=self._rel(c), is_directory=c.is_dir()) for c in children]

    def _read(self, path: str) -> str:

        p = self.resolve(path)

        if not p.is_file():
            raise ToolExecutionError(f"No such file: {path}")
        data = p.read_bytes()
        if len(data) > self.max_read_bytes:
            raise ToolExecutionError(f"Refusing to read >{self.max_read_bytes} bytes from {path}")

        return data.decode("utf-8", errors="replace")

    def _write(self, path: str, content: str) -> None:

        p = self.resolve(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content or "", encoding="utf-8")

    def _create(self, path: str, is_directory: bool) -> None:

        p = self.resolve(path)

        if is_directory:
            p.mkdir(parents=True, exist_ok=True)
        else:
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text("", encoding="utf-8")

    def _delete(self, path: str) -> None:

        p = self.resolve(path)

        if p == self.root:
            raise WorkspaceViolation("Refusing to delete the workspace root")
        if p.is_dir() and not p.is_symlink():
            shutil.rmtree(p)
        elif p.exists() or p.is_symlink():
            p.unlink()
        else:
            raise ToolExecutionError(f"No such file or directory: {path}")

    async def _run(self, fn, *args):

        try:
            return await asyncio.to_thread(fn, *args)
        except OSError as e:
            raise ToolExecutionError(f"{e.strerror or e}: {e.filename or ''}".rstrip(": ")) from e

    async def list(self, dir: str) -> List[FileEntry]:

        return await self._run(self._list, dir)

    async def read(self, path: str) -> str:

        return await self._run(self._read, path)

    async def write(self, path: str, content: str) -> None:

        await self._run(self._write, path, content)

    async def create(self, path: str, is_directory: bool = False) -> None:

        await self._run(self._create, path, is_directory)

    async def delete(self, path: str) -> None:

        await self._run(self._delete, path)


# --- Remote over HTTP -----------------------------------------------------------
class RemoteFileStore:
    """Talk to a workspace server exposing POST /fs/{list,read,write,create,delete}."""

    def __init__(
            self,
            base_url: str,
            *,
            token: Optional[str] = None,
            timeout: float = 30.0,
            client: Optional[httpx.AsyncClient] = None,
    ):

        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout)

    async def aclose(self) -> None:

        await self._client.aclose()

    async def _post(self, op: str, body: Dict[str, Any]) -> Any:

        try:
            resp = await self._client.post(f"/fs/{op}", json=body)
        except httpx.HTTPError as e:
            raise ToolExecutionError(f"Workspace server unreachable: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.is_error or (isinstance(data, dict) and data.get("ok") is False):
            detail = data.get("error") if isinstance(data, dict) else None
            raise ToolExecutionError(detail or f"Failed to {op} ({resp.status_code})")

        return data

    async def list(self, dir: str) -> List[FileEntry]:

        data = await self._post("list", {"dir": dir})

        return [FileEntry.model_validate(item) for item in (data or [])]

    async def read(self, path: str) -> str:

        data = await self._post("read", {"path": path})

        return (data or {}).get("content") or ""

    async def write(self, path: str, content: str) -> None:

        await self._post("write", {"path": path, "content": content})

    async def create(self, path: str, is_directory: bool = False) -> None:

        await self._post("create", {"path": path, "isDirectory": is_directory})

    async def delete(self, path: str) -> None:

        await self._post("delete", {"path": path})


def open_file_store(backend: Backend, *, root: str = ".", base_url: str = "", token: Optional[str] = None) -> FileStore:
    """Select the file store for the active backend flag."""

    if backend == Backend.REMOTE:
        return RemoteFileStore(base_url, token=token)

    return LocalFileStore(root)
