"""
Mock adapters — scriptable test doubles for the provider and the shell.

Used by ``--mock`` on the CLI to exercise suspend/resume without a real
machine, and by the test suite. Both record every call so tests can
assert on ordering ("backup before stop", "no start call").
"""

from __future__ import annotations

from collections import deque

from sindri.adapters.base import RemoteComputeAPI, RemoteShell
from sindri.core.errors import RemoteCallFailed
from sindri.core.models.command import CommandResult
from sindri.core.models.instance import RemoteInstance, Volume, normalize_state
from sindri.core.models.settings import SSHTarget


class MockComputeAPI(RemoteComputeAPI):
    """In-memory provider with one (or more) machines.

    Args:
        state: Initial provider state of the default machine.
        start_transitions_to: State a machine moves to when started.
            ``None`` leaves it unchanged (simulates a hung start).
        instances: Explicit machine list (overrides ``state``).
    """

    def __init__(
        self,
        state: str = "stopped",
        start_transitions_to: str | None = "started",
        instances: list[RemoteInstance] | None = None,
        volumes: list[Volume] | None = None,
        available: bool = True,
    ):
        self._instances = instances if instances is not None else [
            RemoteInstance(
                id="mock-machine",
                name="mock",
                region="sjc",
                state=normalize_state(state),
                raw_state=state,
            )
        ]
        self._volumes = volumes if volumes is not None else [
            Volume(id="vol_mock", name="sindri_data", size_gb=10, region="sjc")
        ]
        self._available = available
        self._queued_states: deque[str] = deque()
        self._failures: dict[str, str] = {}
        self.start_transitions_to = start_transitions_to
        self.stop_transitions_to: str | None = "stopped"
        self.call_log: list[tuple[str, ...]] = []

    @property
    def name(self) -> str:
        return "mock"

    def is_available(self) -> bool:
        return self._available

    # ── Scripting ───────────────────────────────────────────────

    def set_state(self, state: str, index: int = 0) -> None:
        """Force the provider state of a machine."""
        self._instances[index] = self._instances[index].model_copy(
            update={"state": normalize_state(state), "raw_state": state}
        )

    def queue_states(self, *states: str) -> None:
        """States the default machine reports on the next list calls."""
        self._queued_states.extend(states)

    def set_failure(self, method: str, error: str = "Mock failure") -> None:
        """Make ``method`` ('list', 'start', 'stop', 'volumes') raise."""
        self._failures[method] = error

    def calls(self, method: str) -> list[tuple[str, ...]]:
        return [c for c in self.call_log if c[0] == method]

    def _maybe_fail(self, method: str) -> None:
        if method in self._failures:
            raise RemoteCallFailed(self._failures[method])

    # ── RemoteComputeAPI ────────────────────────────────────────

    def list_instances(self, app_name: str) -> list[RemoteInstance]:
        self.call_log.append(("list", app_name))
        self._maybe_fail("list")
        if self._queued_states and self._instances:
            self.set_state(self._queued_states.popleft())
        return [i.model_copy() for i in self._instances]

    def start_instance(self, app_name: str, instance_id: str) -> None:
        self.call_log.append(("start", app_name, instance_id))
        self._maybe_fail("start")
        if self.start_transitions_to is not None:
            self._transition(instance_id, self.start_transitions_to)

    def stop_instance(self, app_name: str, instance_id: str) -> None:
        self.call_log.append(("stop", app_name, instance_id))
        self._maybe_fail("stop")
        if self.stop_transitions_to is not None:
            self._transition(instance_id, self.stop_transitions_to)

    def list_volumes(self, app_name: str) -> list[Volume]:
        self.call_log.append(("volumes", app_name))
        self._maybe_fail("volumes")
        return [v.model_copy() for v in self._volumes]

    def _transition(self, instance_id: str, state: str) -> None:
        for idx, inst in enumerate(self._instances):
            if inst.id == instance_id:
                self.set_state(state, idx)


class MockShell(RemoteShell):
    """Scriptable remote shell.

    Responses are matched by substring against the command, first
    registered match wins. Unmatched commands succeed with empty output.
    """

    def __init__(self, reachable: bool = True, available: bool = True):
        self.reachable = reachable
        self._available = available
        self._reachability: deque[bool] = deque()
        self._responses: list[tuple[str, CommandResult]] = []
        self.call_log: list[str] = []
        self.probe_count = 0

    @property
    def name(self) -> str:
        return "mock"

    def is_available(self) -> bool:
        return self._available

    def queue_reachability(self, *answers: bool) -> None:
        """Answers for the next probes before falling back to ``reachable``."""
        self._reachability.extend(answers)

    def set_response(self, match: str, stdout: str = "", exit_code: int = 0, stderr: str = "") -> None:
        self._responses.append((
            match,
            CommandResult(command=match, stdout=stdout, stderr=stderr, exit_code=exit_code),
        ))

    def set_failure(self, match: str, error: str = "Mock failure", exit_code: int = 1) -> None:
        self.set_response(match, stderr=error, exit_code=exit_code)

    def commands_matching(self, fragment: str) -> list[str]:
        return [c for c in self.call_log if fragment in c]

    def exec(self, target: SSHTarget, command: str, timeout: float | None = None) -> CommandResult:
        self.call_log.append(command)
        for match, result in self._responses:
            if match in command:
                return result.model_copy(update={"command": command})
        return CommandResult.success(command=command)

    def is_reachable(self, target: SSHTarget, connect_timeout: int = 5) -> bool:
        self.probe_count += 1
        if self._reachability:
            return self._reachability.popleft()
        return self.reachable
