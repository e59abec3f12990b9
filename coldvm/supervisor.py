"""Child process supervision for Cold VM."""

from __future__ import annotations

import subprocess
import time
from typing import Dict, List, Optional, Sequence

from coldvm.constants import SHUTDOWN_ORDER, TERMINATE_TIMEOUT
from coldvm.exceptions import ManagerError
from coldvm.models import SupervisedProcess
from coldvm.utils import log


class ProcessSupervisor:
    """Owns the emulator and display-bridge processes, keyed by role.

    A role is tracked only between a successful launch and a confirmed reap.
    """

    def __init__(self, terminate_timeout: float = TERMINATE_TIMEOUT) -> None:
        self.processes: Dict[str, SupervisedProcess] = {}
        self.terminate_timeout = terminate_timeout
        self._stopping = False

    def launch(self, role: str, argv: Sequence[str], settle: float = 0.0) -> SupervisedProcess:
        if role in self.processes:
            raise ManagerError(f"{role} is already running (PID {self.processes[role].pid})")
        log("DEBUG", f"Spawning {role}: {' '.join(argv)}")
        try:
            proc = subprocess.Popen(list(argv))
        except OSError as exc:
            raise ManagerError(f"Failed to start {role}: {exc}") from exc

        if settle > 0:
            time.sleep(settle)
        code = proc.poll()
        if code is not None:
            raise ManagerError(f"{role} exited prematurely (code {code})")

        entry = SupervisedProcess(role=role, process=proc)
        self.processes[role] = entry
        log("DEBUG", f"{role} running with PID {entry.pid}")
        return entry

    def is_running(self, role: str) -> bool:
        entry = self.processes.get(role)
        if entry is None:
            return False
        return entry.process.poll() is None

    def pid(self, role: str) -> Optional[int]:
        entry = self.processes.get(role)
        return entry.pid if entry is not None else None

    def tracked_roles(self) -> List[str]:
        return list(self.processes)

    def terminate(self, role: str) -> bool:
        """SIGTERM the process for ``role`` and reap it.

        Returns False when nothing is tracked under ``role``. Escalates to
        SIGKILL after ``terminate_timeout`` seconds.
        """
        entry = self.processes.get(role)
        if entry is None:
            log("DEBUG", f"No tracked {role} process; nothing to stop")
            return False
        proc = entry.process
        if proc.poll() is None:
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
        try:
            proc.wait(timeout=self.terminate_timeout)
        except subprocess.TimeoutExpired:
            log("WARN", f"{role} did not exit after {self.terminate_timeout:.0f}s; killing PID {entry.pid}")
            proc.kill()
            proc.wait()
        del self.processes[role]
        return True

    def shutdown(self) -> None:
        """Stop every tracked process: emulator first, then the display bridge."""
        if self._stopping:
            return
        self._stopping = True
        try:
            ordered = [role for role in SHUTDOWN_ORDER if role in self.processes]
            ordered += [role for role in self.processes if role not in SHUTDOWN_ORDER]
            for role in ordered:
                try:
                    if self.terminate(role):
                        log("SUCCESS", f"{role} stopped")
                except (OSError, subprocess.SubprocessError) as exc:
                    log("ERROR", f"Failed to stop {role}: {exc}")
        finally:
            self._stopping = False
