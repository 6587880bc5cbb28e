"""Per-connection shell command sessions streaming process output."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import subprocess
import sys
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from codecraft.config import Settings
from codecraft.errors import CodeCraftError, ProtocolError, SpawnFailureError
from codecraft.shell.protocol import (
    CloseMessage,
    CommandCompleteMessage,
    CommandMessage,
    ErrorMessage,
    OutboundMessage,
    OutputMessage,
    matches_scaffold_trigger,
    parse_inbound,
)
from codecraft.shell.registry import ProcessRegistry, ProcessStatus
from codecraft.workspace.paths import resolve_workspace_path

logger = logging.getLogger("codecraft.shell.session")

READ_CHUNK_SIZE = 4096

SendFn = Callable[[dict[str, Any]], Awaitable[None]]


def build_command_env(base: dict[str, str] | None = None) -> dict[str, str]:
    """Caller environment plus forced color output and npm audit disabled."""
    env = dict(os.environ if base is None else base)
    env["FORCE_COLOR"] = "1"
    env["npm_config_audit"] = "false"
    return env


async def spawn_shell(command: str, cwd: Path, env: dict[str, str] | None = None) -> asyncio.subprocess.Process:
    """Start `command` through the system shell as its own process group."""
    kwargs: dict[str, Any] = {}
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP  # type: ignore[attr-defined]
    else:
        kwargs["start_new_session"] = True
    try:
        return await asyncio.create_subprocess_shell(
            command,
            cwd=str(cwd),
            env=env if env is not None else build_command_env(),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            **kwargs,
        )
    except (OSError, ValueError) as exc:
        raise SpawnFailureError(str(exc)) from exc


class CommandSession:
    """Protocol state for one socket connection.

    Processes spawned here are registered under this session's connection id,
    so `stop` and `close` only tear down what this connection started.
    """

    def __init__(
        self,
        send: SendFn,
        registry: ProcessRegistry,
        settings: Settings,
        connection_id: str | None = None,
    ) -> None:
        self.connection_id = connection_id or uuid.uuid4().hex
        self.registry = registry
        self.settings = settings
        self._send = send
        self._send_lock = asyncio.Lock()
        self._closed = False
        self._watchers: set[asyncio.Task] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    async def handle_text(self, raw: str | bytes) -> None:
        """Dispatch one inbound frame. Never raises."""
        try:
            message = parse_inbound(raw)
        except ProtocolError as exc:
            logger.warning("Rejected message on %s: %s", self.connection_id, exc)
            await self._emit(ErrorMessage(content=str(exc)))
            return

        try:
            if isinstance(message, CommandMessage):
                await self.run_command(message.command, cwd=message.cwd)
            else:
                self.stop()
        except Exception as exc:
            logger.exception("Error handling message on %s", self.connection_id)
            await self._emit(ErrorMessage(content=str(exc)))

    async def run_command(self, command: str, cwd: str | None = None) -> int | None:
        """Spawn `command` and start forwarding its output. Returns the pid."""
        try:
            working_directory = resolve_workspace_path(self.settings.workspace_dir, cwd)
            process = await spawn_shell(command, working_directory)
        except CodeCraftError as exc:
            logger.error("Failed to start %r: %s", command, exc)
            await self._emit(ErrorMessage(content=str(exc), command=command))
            return None

        pid = self.registry.register(process, working_directory, self.connection_id, command)
        logger.info("Started pid=%s on %s: %s", pid, self.connection_id, command)
        task = asyncio.create_task(self._supervise(pid, process, command))
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)
        return pid

    def stop(self) -> list[int]:
        """Terminate every process this session owns."""
        pids = self.registry.terminate_owned_by(self.connection_id)
        if pids:
            logger.info("Stopped %d process(es) on %s: %s", len(pids), self.connection_id, pids)
        return pids

    def close(self) -> list[int]:
        """Tear down after the connection went away; later output is dropped."""
        self._closed = True
        pids = self.registry.terminate_owned_by(self.connection_id)
        if pids:
            logger.info("Terminated %d process(es) of closed connection %s", len(pids), self.connection_id)
        return pids

    async def wait_idle(self) -> None:
        """Wait until every spawned process has been reaped."""
        if self._watchers:
            await asyncio.gather(*list(self._watchers), return_exceptions=True)

    async def _supervise(self, pid: int, process: asyncio.subprocess.Process, command: str) -> None:
        try:
            await asyncio.gather(
                self._pump(process.stdout, command, is_stderr=False),
                self._pump(process.stderr, command, is_stderr=True),
            )
            code = await process.wait()
        except asyncio.CancelledError:
            self.registry.terminate(pid)
            self.registry.remove(pid)
            raise
        except Exception as exc:
            logger.error("Lost output stream of pid=%s: %s", pid, exc)
            self.registry.terminate(pid)
            self.registry.remove(pid)
            await self._emit(ErrorMessage(content=str(exc), command=command))
            return

        record = self.registry.remove(pid)
        if record is not None:
            record.transition(ProcessStatus.EXITED)
        logger.info("pid=%s exited with code %s", pid, code)

        if matches_scaffold_trigger(command, self.settings.scaffold_triggers):
            await self._emit(CommandCompleteMessage(command=command, code=code))
        else:
            await self._emit(CloseMessage(code=code, command=command))

    async def _pump(self, stream: asyncio.StreamReader | None, command: str, *, is_stderr: bool) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                if is_stderr:
                    await self._emit(ErrorMessage(content=text, command=command))
                else:
                    await self._emit(OutputMessage(content=text, command=command))
            if not chunk:
                return

    async def _emit(self, message: OutboundMessage) -> None:
        if self._closed:
            return
        async with self._send_lock:
            if self._closed:
                return
            try:
                await self._send(message.to_wire())
            except Exception as exc:
                logger.debug("Dropping %s message for %s: %s", message.type, self.connection_id, exc)
                self._closed = True
