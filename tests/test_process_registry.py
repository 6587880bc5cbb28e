"""Tests for process registry bookkeeping and termination fan-out."""

import signal
import unittest
from pathlib import Path
from unittest import mock

from codecraft.errors import TerminationFailure
from codecraft.shell.registry import ProcessRecord, ProcessRegistry, ProcessStatus


class _FakeProcess:
    def __init__(self, pid: int):
        self.pid = pid


class ProcessRegistryTests(unittest.TestCase):
    """Validate registration, ownership queries and idempotent removal."""

    def setUp(self) -> None:
        self.registry = ProcessRegistry()
        patcher = mock.patch("codecraft.shell.registry._send_termination")
        self.send_termination = patcher.start()
        self.addCleanup(patcher.stop)

    def test_register_returns_pid_and_marks_running(self) -> None:
        pid = self.registry.register(_FakeProcess(101), Path("/ws"), "conn-a", "npm start")
        self.assertEqual(pid, 101)
        self.assertIn(101, self.registry)
        record = self.registry.get(101)
        assert record is not None
        self.assertEqual(record.status, ProcessStatus.RUNNING)
        self.assertEqual(record.owner, "conn-a")

    def test_remove_is_idempotent(self) -> None:
        self.registry.register(_FakeProcess(7), Path("/ws"), "conn-a")
        self.assertIsNotNone(self.registry.remove(7))
        self.assertIsNone(self.registry.remove(7))
        self.assertIsNone(self.registry.remove(12345))
        self.assertEqual(len(self.registry), 0)

    def test_terminate_owned_by_only_touches_that_owner(self) -> None:
        self.registry.register(_FakeProcess(1), Path("/ws"), "conn-a")
        self.registry.register(_FakeProcess(2), Path("/ws"), "conn-b")
        self.registry.register(_FakeProcess(3), Path("/ws/app"), "conn-a")

        pids = self.registry.terminate_owned_by("conn-a")

        self.assertEqual(sorted(pids), [1, 3])
        self.assertEqual([record.pid for record in self.registry.records()], [2])
        self.assertEqual(
            sorted(call.args[0] for call in self.send_termination.call_args_list),
            [1, 3],
        )

    def test_terminate_under_directory_matches_subtree_not_siblings(self) -> None:
        self.registry.register(_FakeProcess(1), Path("/ws/a"), "conn-a")
        self.registry.register(_FakeProcess(2), Path("/ws/a/b/c"), "conn-b")
        self.registry.register(_FakeProcess(3), Path("/ws/ab"), "conn-a")
        self.registry.register(_FakeProcess(4), Path("/ws"), "conn-a")

        pids = self.registry.terminate_under_directory(Path("/ws/a"))

        self.assertEqual(sorted(pids), [1, 2])
        self.assertEqual(sorted(record.pid for record in self.registry.records()), [3, 4])

    def test_termination_failure_does_not_stop_the_rest(self) -> None:
        self.registry.register(_FakeProcess(1), Path("/ws"), "conn-a")
        self.registry.register(_FakeProcess(2), Path("/ws"), "conn-a")
        self.send_termination.side_effect = [TerminationFailure("gone"), None]

        with self.assertLogs("codecraft.shell.registry", level="WARNING"):
            pids = self.registry.terminate_all()

        self.assertEqual(sorted(pids), [1, 2])
        self.assertEqual(len(self.registry), 0)

    def test_terminate_returns_false_on_failure(self) -> None:
        self.send_termination.side_effect = TerminationFailure("permission denied")
        with self.assertLogs("codecraft.shell.registry", level="WARNING"):
            self.assertFalse(self.registry.terminate(999))

    def test_terminate_all_under_with_no_entries_is_noop(self) -> None:
        self.assertEqual(self.registry.terminate_all_under(lambda record: True), [])
        self.send_termination.assert_not_called()


class ProcessRecordTransitionTests(unittest.TestCase):
    def test_terminal_states_do_not_change(self) -> None:
        record = ProcessRecord(pid=1, process=None, working_directory=Path("/ws"), owner="c")
        self.assertTrue(record.transition(ProcessStatus.RUNNING))
        self.assertTrue(record.transition(ProcessStatus.EXITED))
        self.assertFalse(record.transition(ProcessStatus.TERMINATED))
        self.assertFalse(record.transition(ProcessStatus.RUNNING))
        self.assertEqual(record.status, ProcessStatus.EXITED)

    def test_spawn_failed_only_from_spawned(self) -> None:
        record = ProcessRecord(pid=1, process=None, working_directory=Path("/ws"), owner="c")
        record.transition(ProcessStatus.RUNNING)
        self.assertFalse(record.transition(ProcessStatus.SPAWN_FAILED))


@unittest.skipIf(not hasattr(signal, "SIGKILL"), "POSIX signals required")
class SendTerminationTests(unittest.TestCase):
    def test_missing_process_group_raises_termination_failure(self) -> None:
        from codecraft.shell import registry as registry_module

        with mock.patch.object(registry_module.sys, "platform", "linux"), mock.patch.object(
            registry_module.os, "killpg", side_effect=ProcessLookupError()
        ):
            with self.assertRaises(TerminationFailure):
                registry_module._send_termination(424242)

    def test_permission_error_falls_back_to_process_kill(self) -> None:
        from codecraft.shell import registry as registry_module

        with mock.patch.object(registry_module.sys, "platform", "linux"), mock.patch.object(
            registry_module.os, "killpg", side_effect=PermissionError()
        ), mock.patch.object(registry_module.os, "kill") as kill:
            registry_module._send_termination(55)
        kill.assert_called_once_with(55, signal.SIGTERM)


if __name__ == "__main__":
    unittest.main()
