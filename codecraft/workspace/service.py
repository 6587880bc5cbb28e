"""Workspace operations coupled to the shell process registry."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from codecraft.errors import PathEscapeError
from codecraft.shell.registry import ProcessRegistry
from codecraft.workspace.paths import relative_to_workspace, resolve_workspace_path
from codecraft.workspace.storage import WorkspaceStore

logger = logging.getLogger("codecraft.workspace.service")


class WorkspaceService:
    """Front door for file routes; deletes stop processes living in the subtree first."""

    def __init__(
        self,
        store: WorkspaceStore,
        registry: ProcessRegistry,
        workspace_dir: Path,
        grace_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.registry = registry
        self.workspace_dir = Path(workspace_dir).resolve()
        self.grace_seconds = grace_seconds
        self._sleep = sleep

    def _relative(self, path: str | None) -> str:
        target = resolve_workspace_path(self.workspace_dir, path)
        return relative_to_workspace(self.workspace_dir, target)

    async def list_dir(self, path: str | None) -> list[dict[str, Any]]:
        return await self.store.list_dir(self._relative(path))

    async def read_file(self, path: str | None) -> str:
        return await self.store.read_file(self._relative(path))

    async def write_file(self, path: str | None, content: str) -> None:
        await self.store.write_file(self._relative(path), content)

    async def create(self, parent: str | None, name: str, entry_type: str) -> None:
        await self.store.create(self._relative(parent), name, entry_type)

    async def delete(self, path: str | None) -> list[int]:
        """Delete `path`, terminating processes whose cwd lies under it.

        Returns the pids that were signalled. Removal can still fail with a
        BackendError if a process outlives the grace window.
        """
        # A trailing symlink names the link, never the directory it points to.
        target = resolve_workspace_path(self.workspace_dir, path, follow_symlinks=False)
        if target == self.workspace_dir:
            raise PathEscapeError("Access denied: cannot delete workspace root")
        relative = relative_to_workspace(self.workspace_dir, target)

        pids: list[int] = []
        if await self.store.is_dir(relative):
            directory = target.resolve()
            pids = self.registry.terminate_under_directory(directory)
            await self._sleep(self.grace_seconds)
            # Commands may have started under the directory during the wait.
            late = self.registry.terminate_under_directory(directory)
            pids.extend(pid for pid in late if pid not in pids)
            if pids:
                logger.info("Terminated %d process(es) under %s before delete: %s", len(pids), relative, pids)

        await self.store.delete(relative)
        logger.info("Deleted %s", relative)
        return pids
