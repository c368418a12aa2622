from __future__ import annotations

import json
import os
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Any

import pytest

from graphistry_launcher import supervisor as supervisor_module
from graphistry_launcher.environment import Interpreter, build_worker_env
from graphistry_launcher.errors import (
    InterpreterNotFound,
    SpawnFailure,
    WorkerAbnormalExit,
    WorkerKilled,
    WorkerScriptMissing,
)
from graphistry_launcher.settings import LauncherSettings
from graphistry_launcher.supervisor import WorkerOutcome, WorkerSupervisor, launch

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal semantics")


class FakeProcess:
    pid = 4242

    def __init__(self, returncode: int = 0) -> None:
        self.returncode = returncode
        self.signals: list[int] = []

    def send_signal(self, signum: int) -> None:
        self.signals.append(signum)

    def wait(self) -> int:
        return self.returncode


def _no_spawn(*args: Any, **kwargs: Any) -> Any:
    raise AssertionError("worker must not be spawned")


def test_clean_exit_propagates_zero(settings: LauncherSettings, write_worker) -> None:
    write_worker("print('hello from worker')\n")
    assert launch(settings) == 0


def test_non_zero_exit_is_propagated(settings: LauncherSettings, write_worker) -> None:
    write_worker("import sys\nsys.exit(7)\n")

    with pytest.raises(WorkerAbnormalExit) as excinfo:
        launch(settings)

    assert excinfo.value.exit_code == 7
    assert "exited with code 7" in str(excinfo.value)


@posix_only
def test_worker_killed_by_signal_reports_name(settings: LauncherSettings, write_worker) -> None:
    write_worker(
        """
        import os, signal
        os.kill(os.getpid(), signal.SIGTERM)
        """
    )

    with pytest.raises(WorkerKilled) as excinfo:
        launch(settings)

    assert excinfo.value.signal_name == "SIGTERM"
    assert excinfo.value.exit_code == 1
    assert "SIGTERM" in str(excinfo.value)


def test_worker_receives_merged_environment(
    settings: LauncherSettings, write_worker, install_root: Path
) -> None:
    dump = install_root / "env.json"
    write_worker(
        f"""
        import json, os
        keys = ["PYTHONUNBUFFERED", "GRAPHISTRY_VENV_ACTIVE", "GRAPHISTRY_USERNAME", "GRAPHISTRY_PASSWORD"]
        with open({str(dump)!r}, "w") as handle:
            json.dump({{key: os.environ.get(key) for key in keys}}, handle)
        """
    )
    base_env = dict(os.environ, GRAPHISTRY_USERNAME="alice", GRAPHISTRY_PASSWORD="s3cret")

    assert launch(settings, base_env=base_env) == 0

    assert json.loads(dump.read_text()) == {
        "PYTHONUNBUFFERED": "1",
        "GRAPHISTRY_VENV_ACTIVE": "1",
        "GRAPHISTRY_USERNAME": "alice",
        "GRAPHISTRY_PASSWORD": "s3cret",
    }


def test_missing_worker_script_skips_interpreter(
    settings: LauncherSettings, monkeypatch: pytest.MonkeyPatch
) -> None:
    probed: list[str] = []
    monkeypatch.setattr(supervisor_module, "WorkerSupervisor", _no_spawn)

    with pytest.raises(WorkerScriptMissing):
        launch(settings, probe=lambda command: probed.append(command) or True)

    assert probed == []


def test_missing_interpreter_spawns_nothing(
    settings: LauncherSettings, write_worker, monkeypatch: pytest.MonkeyPatch
) -> None:
    write_worker("print('unreachable')\n")
    monkeypatch.setattr(supervisor_module, "WorkerSupervisor", _no_spawn)

    with pytest.raises(InterpreterNotFound):
        launch(settings, probe=lambda command: False)


def test_spawn_failure_is_reported(install_root: Path, write_worker) -> None:
    script = write_worker("print('unreachable')\n")
    supervisor = WorkerSupervisor(
        Interpreter(command=str(install_root / "no-such-python"), isolated=True),
        script,
        env=build_worker_env(os.environ),
    )

    with pytest.raises(SpawnFailure) as excinfo:
        supervisor.run()

    assert excinfo.value.exit_code == 1
    assert "Failed to start Python MCP server" in str(excinfo.value)


def test_worker_is_spawned_with_inherited_stdio(install_root: Path) -> None:
    calls: list[tuple[list[str], dict[str, Any]]] = []

    def fake_popen(argv: list[str], **kwargs: Any) -> FakeProcess:
        calls.append((argv, kwargs))
        return FakeProcess()

    script = install_root / "run_graphistry_mcp.py"
    supervisor = WorkerSupervisor(
        Interpreter(command="python3", isolated=False),
        script,
        env={"GRAPHISTRY_VENV_ACTIVE": "1"},
        popen_factory=fake_popen,
    )

    assert supervisor.run() == 0
    argv, kwargs = calls[0]
    assert argv == ["python3", str(script)]
    assert kwargs["stdin"] is None
    assert kwargs["stdout"] is None
    assert kwargs["stderr"] is None
    assert kwargs["env"] == {"GRAPHISTRY_VENV_ACTIVE": "1"}


def test_signal_before_spawn_is_forwarded_once_started(install_root: Path) -> None:
    process = FakeProcess()
    supervisor = WorkerSupervisor(
        Interpreter(command="python3", isolated=False),
        install_root / "run_graphistry_mcp.py",
        env={},
        popen_factory=lambda argv, **kwargs: process,
    )

    supervisor._handle_signal(signal.SIGTERM, None)
    supervisor.start()

    assert process.signals == [signal.SIGTERM]


def test_signal_handlers_are_restored(install_root: Path) -> None:
    before = {signum: signal.getsignal(signum) for signum in supervisor_module.FORWARDED_SIGNALS}
    supervisor = WorkerSupervisor(
        Interpreter(command="python3", isolated=False),
        install_root / "run_graphistry_mcp.py",
        env={},
        popen_factory=lambda argv, **kwargs: FakeProcess(returncode=3),
    )

    with pytest.raises(WorkerAbnormalExit):
        supervisor.run()

    after = {signum: signal.getsignal(signum) for signum in supervisor_module.FORWARDED_SIGNALS}
    assert after == before


@posix_only
@pytest.mark.parametrize("signum", [signal.SIGTERM, signal.SIGINT])
def test_supervisor_forwards_termination_signals(
    signum: signal.Signals, install_root: Path, write_worker
) -> None:
    ready = install_root / "ready"
    script = write_worker(
        f"""
        import pathlib, time
        pathlib.Path({str(ready)!r}).write_text("up")
        time.sleep(30)
        """
    )
    supervisor = WorkerSupervisor(
        Interpreter(command=sys.executable, isolated=False),
        script,
        env=build_worker_env(os.environ),
    )

    def _signal_when_ready() -> None:
        deadline = time.monotonic() + 15
        while time.monotonic() < deadline:
            if ready.exists():
                signal.pthread_kill(threading.main_thread().ident, signum)
                return
            time.sleep(0.05)

    thread = threading.Thread(target=_signal_when_ready, daemon=True)
    thread.start()
    with pytest.raises(WorkerKilled) as excinfo:
        supervisor.run()
    thread.join()

    assert excinfo.value.signal_name == signum.name


@pytest.mark.parametrize(
    ("returncode", "signal_name"),
    [(0, None), (7, None), (-signal.SIGTERM, "SIGTERM"), (-signal.SIGINT, "SIGINT")],
)
def test_worker_outcome_signal_name(returncode: int, signal_name: str | None) -> None:
    assert WorkerOutcome(returncode).signal_name == signal_name


def test_worker_outcome_unknown_signal() -> None:
    with pytest.raises(WorkerKilled) as excinfo:
        WorkerOutcome(-999).raise_for_status()
    assert excinfo.value.signal_name == "signal 999"


def test_start_twice_is_rejected(install_root: Path) -> None:
    supervisor = WorkerSupervisor(
        Interpreter(command="python3", isolated=False),
        install_root / "run_graphistry_mcp.py",
        env={},
        popen_factory=lambda argv, **kwargs: FakeProcess(),
    )
    supervisor.start()
    with pytest.raises(RuntimeError):
        supervisor.start()

