"""Worker supervisor that runs the Python MCP server as a child process."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from types import FrameType
from typing import Any

from graphistry_launcher.environment import (
    Interpreter,
    LauncherPaths,
    Probe,
    build_worker_env,
    find_interpreter,
    probe_interpreter,
    resolve_worker_script,
)
from graphistry_launcher.errors import SpawnFailure, WorkerAbnormalExit, WorkerKilled
from graphistry_launcher.settings import LauncherSettings

__all__ = [
    "FORWARDED_SIGNALS",
    "WorkerOutcome",
    "WorkerSupervisor",
    "launch",
]

logger = logging.getLogger(__name__)

FORWARDED_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGINT)

_Handler = Callable[[int, FrameType | None], Any] | int | None


@dataclass(frozen=True, slots=True)
class WorkerOutcome:
    """How the worker terminated, as reported by ``Popen.returncode``."""

    returncode: int

    @property
    def signal_name(self) -> str | None:
        if self.returncode >= 0:
            return None
        try:
            return signal.Signals(-self.returncode).name
        except ValueError:
            return f"signal {-self.returncode}"

    def raise_for_status(self) -> None:
        name = self.signal_name
        if name is not None:
            raise WorkerKilled(name)
        if self.returncode != 0:
            raise WorkerAbnormalExit(self.returncode)


class WorkerSupervisor:
    """Spawn one worker with inherited stdio and relay its lifecycle.

    The worker speaks its own protocol over stdin/stdout, so nothing here reads
    or writes those streams.
    """

    def __init__(
        self,
        interpreter: Interpreter,
        script: Path,
        *,
        env: Mapping[str, str],
        forward_signals: Sequence[signal.Signals] = FORWARDED_SIGNALS,
        popen_factory: Callable[..., subprocess.Popen[Any]] = subprocess.Popen,
    ) -> None:
        self.interpreter = interpreter
        self.script = Path(script)
        self.env = dict(env)
        self.forward_signals = tuple(forward_signals)
        self._popen_factory = popen_factory
        self.process: subprocess.Popen[Any] | None = None
        self._pending_signal: int | None = None
        self._previous_handlers: dict[int, _Handler] = {}

    @property
    def argv(self) -> list[str]:
        return [self.interpreter.command, str(self.script)]

    def run(self) -> int:
        """Run the worker to completion and return the supervisor exit status.

        Raises :class:`WorkerAbnormalExit` or :class:`WorkerKilled` when the
        worker did not exit cleanly.
        """

        self._install_signal_handlers()
        try:
            self.start()
            outcome = self.wait()
        finally:
            self._restore_signal_handlers()
        outcome.raise_for_status()
        return 0

    def start(self) -> subprocess.Popen[Any]:
        if self.process is not None:
            raise RuntimeError("Worker already started")
        logger.debug("Spawning worker: %s", " ".join(self.argv))
        try:
            self.process = self._popen_factory(  # noqa: S603
                self.argv,
                env=self.env,
                stdin=None,
                stdout=None,
                stderr=None,
            )
        except OSError as exc:
            raise SpawnFailure(exc.strerror or str(exc)) from exc
        logger.debug("Worker running with pid %s", self.process.pid)
        if self._pending_signal is not None:
            self._forward(self._pending_signal)
        return self.process

    def wait(self) -> WorkerOutcome:
        if self.process is None:
            raise RuntimeError("Worker has not been started")
        returncode = self.process.wait()
        logger.debug("Worker exited with status %s", returncode)
        return WorkerOutcome(returncode=returncode)

    # ------------------------------------------------------------------ signals
    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        if self.process is None:
            self._pending_signal = signum
            return
        self._forward(signum)

    def _forward(self, signum: int) -> None:
        assert self.process is not None
        logger.debug("Forwarding %s to worker", signal.Signals(signum).name)
        if os.name == "nt":  # pragma: no cover - Windows only delivers terminate
            self.process.terminate()
        else:
            self.process.send_signal(signum)

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread; signals will not be forwarded")
            return
        for signum in self.forward_signals:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def _restore_signal_handlers(self) -> None:
        while self._previous_handlers:
            signum, handler = self._previous_handlers.popitem()
            signal.signal(signum, signal.SIG_DFL if handler is None else handler)


def launch(
    settings: LauncherSettings,
    *,
    base_env: Mapping[str, str] | None = None,
    probe: Probe = probe_interpreter,
) -> int:
    """Resolve the worker, pick an interpreter, and supervise the worker."""

    paths = LauncherPaths.from_settings(settings)
    script = resolve_worker_script(paths)
    interpreter = find_interpreter(paths, settings.fallback_interpreters, probe=probe)
    env = build_worker_env(os.environ if base_env is None else base_env, settings.env)
    supervisor = WorkerSupervisor(interpreter, script, env=env)
    return supervisor.run()
