"""In-memory registry of spawned shell processes and their teardown."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from codecraft.errors import TerminationFailure

logger = logging.getLogger("codecraft.shell.registry")


class ProcessStatus(str, Enum):
    SPAWNED = "spawned"
    RUNNING = "running"
    EXITED = "exited"
    TERMINATED = "terminated"
    SPAWN_FAILED = "spawn_failed"


TERMINAL_STATUSES = {ProcessStatus.EXITED, ProcessStatus.TERMINATED, ProcessStatus.SPAWN_FAILED}

_ALLOWED_TRANSITIONS = {
    ProcessStatus.SPAWNED: {ProcessStatus.RUNNING, ProcessStatus.SPAWN_FAILED, ProcessStatus.TERMINATED},
    ProcessStatus.RUNNING: {ProcessStatus.EXITED, ProcessStatus.TERMINATED},
}


@dataclass
class ProcessRecord:
    """Runtime handle for one spawned command."""

    pid: int
    process: Any
    working_directory: Path
    owner: str
    command: str = ""
    status: ProcessStatus = ProcessStatus.SPAWNED
    started_at: float = field(default_factory=time.time)

    def transition(self, new_status: ProcessStatus) -> bool:
        """Move to `new_status` if allowed; terminal states never change."""
        if new_status == self.status:
            return False
        if new_status not in _ALLOWED_TRANSITIONS.get(self.status, set()):
            return False
        self.status = new_status
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "owner": self.owner,
            "command": self.command,
            "working_directory": str(self.working_directory),
            "status": self.status.value,
            "started_at": self.started_at,
        }


def _is_under(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


class ProcessRegistry:
    """
    Shared map of live processes keyed by OS pid.

    Every method is synchronous so a single call never spans an await; callers
    on the event loop see each operation as one step.
    """

    def __init__(self) -> None:
        self._records: dict[int, ProcessRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, pid: object) -> bool:
        return pid in self._records

    def register(self, process: Any, working_directory: Path, owner: str, command: str = "") -> int:
        """Insert a record for a freshly spawned process and return its pid."""
        pid = int(process.pid)
        record = ProcessRecord(
            pid=pid,
            process=process,
            working_directory=Path(working_directory),
            owner=owner,
            command=command,
        )
        record.transition(ProcessStatus.RUNNING)
        self._records[pid] = record
        logger.debug("Registered pid=%s owner=%s cwd=%s", pid, owner, working_directory)
        return pid

    def get(self, pid: int) -> ProcessRecord | None:
        return self._records.get(pid)

    def remove(self, pid: int) -> ProcessRecord | None:
        """Drop the record for `pid`; absent pids are a no-op."""
        record = self._records.pop(pid, None)
        if record is not None:
            logger.debug("Removed pid=%s status=%s", pid, record.status.value)
        return record

    def records(self) -> list[ProcessRecord]:
        """Snapshot of current records, safe to iterate while mutating."""
        return list(self._records.values())

    def owned_by(self, owner: str) -> list[ProcessRecord]:
        return [record for record in self.records() if record.owner == owner]

    def snapshot(self) -> list[dict[str, Any]]:
        return [record.to_dict() for record in self.records()]

    def terminate(self, pid: int) -> bool:
        """Send a termination signal to `pid` and its children.

        Returns True when the signal was delivered. Failures are logged and
        never raised.
        """
        try:
            _send_termination(pid)
        except TerminationFailure as exc:
            logger.warning("Error killing process %s: %s", pid, exc)
            return False
        record = self._records.get(pid)
        if record is not None:
            record.transition(ProcessStatus.TERMINATED)
        return True

    def terminate_all_under(self, predicate: Callable[[ProcessRecord], bool]) -> list[int]:
        """Terminate and remove every record matching `predicate`."""
        matched: list[int] = []
        for record in self.records():
            try:
                selected = predicate(record)
            except Exception as exc:
                logger.warning("Process selector failed for pid=%s: %s", record.pid, exc)
                continue
            if not selected:
                continue
            self.terminate(record.pid)
            record.transition(ProcessStatus.TERMINATED)
            self.remove(record.pid)
            matched.append(record.pid)
        return matched

    def terminate_owned_by(self, owner: str) -> list[int]:
        return self.terminate_all_under(lambda record: record.owner == owner)

    def terminate_under_directory(self, directory: Path) -> list[int]:
        root = Path(directory)
        return self.terminate_all_under(lambda record: _is_under(record.working_directory, root))

    def terminate_all(self) -> list[int]:
        return self.terminate_all_under(lambda record: True)


def _send_termination(pid: int) -> None:
    """Deliver a platform-appropriate kill to `pid` and its process tree."""
    if sys.platform == "win32":
        # taskkill /t walks the child tree, which a plain TerminateProcess does not.
        try:
            subprocess.Popen(
                ["taskkill", "/pid", str(pid), "/t", "/f"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise TerminationFailure(str(exc)) from exc
        return

    # Commands are spawned as session leaders, so the pgid equals the pid.
    try:
        os.killpg(pid, signal.SIGTERM)
        return
    except ProcessLookupError as exc:
        raise TerminationFailure(f"process {pid} not running") from exc
    except PermissionError:
        pass
    except OSError as exc:
        raise TerminationFailure(str(exc)) from exc

    try:
        os.kill(pid, signal.SIGTERM)
    except OSError as exc:
        raise TerminationFailure(str(exc)) from exc
