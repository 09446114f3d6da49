from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from ..errors import CaseCancelled, InvocationError
from ..schemas import InvocationResult

CallableOutput = Union[InvocationResult, Tuple[str, int]]


class InvocationAdapter(Protocol):
    def invoke(
        self,
        argv: Sequence[str],
        cwd: Optional[Path] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> InvocationResult: ...


def _invocation_env(extra: Optional[Mapping[str, str]]) -> dict[str, str]:
    env = dict(os.environ)
    env.update(
        {
            "PYTHONIOENCODING": "utf-8",
            "PYTHONHASHSEED": "0",
            "PYTHONUNBUFFERED": "1",
            "NO_COLOR": "1",
        }
    )
    if extra:
        env.update(extra)
    return env


def _signal_name(returncode: int) -> str:
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"signal {-returncode}"


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise CaseCancelled("run cancelled before the program started")


class SubprocessInvocationAdapter:
    # One process per call; never retried.

    def __init__(
        self,
        command: Sequence[str],
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout_s: float = 60.0,
        poll_interval_s: float = 0.05,
    ) -> None:
        if not command:
            raise ValueError("command must not be empty")
        self.command = list(command)
        self.cwd = cwd
        self.env = dict(env) if env else None
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s

    def invoke(
        self,
        argv: Sequence[str],
        cwd: Optional[Path] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> InvocationResult:
        _check_cancelled(cancel_event)
        full_command: List[str] = [*self.command, *argv]
        start = time.time_ns()
        try:
            proc = subprocess.Popen(
                full_command,
                cwd=cwd or self.cwd,
                env=_invocation_env(self.env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise InvocationError(
                "SPAWN_FAILED", f"could not start `{self.command[0]}`: {exc}"
            ) from exc
        deadline = time.monotonic() + self.timeout_s
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=self.poll_interval_s)
                break
            except subprocess.TimeoutExpired:
                if cancel_event is not None and cancel_event.is_set():
                    self._kill(proc)
                    raise CaseCancelled("run cancelled while the program was running")
                if time.monotonic() >= deadline:
                    self._kill(proc)
                    raise InvocationError(
                        "TIMEOUT", f"program did not finish within {self.timeout_s}s"
                    )
        text = stdout.decode("utf-8", errors="replace")
        if proc.returncode < 0 and not text.strip():
            raise InvocationError(
                "CRASHED",
                f"program died from {_signal_name(proc.returncode)} without output",
            )
        return InvocationResult(
            stdout=text,
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_status=proc.returncode,
            duration_ns=time.time_ns() - start,
        )

    @staticmethod
    def _kill(proc: "subprocess.Popen[bytes]") -> None:
        proc.kill()
        proc.communicate()


class CallableInvocationAdapter:
    # func(argv) returns (stdout, exit_status) or an InvocationResult.

    def __init__(self, func: Callable[[List[str]], CallableOutput]) -> None:
        self.func = func

    def invoke(
        self,
        argv: Sequence[str],
        cwd: Optional[Path] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> InvocationResult:
        _check_cancelled(cancel_event)
        start = time.time_ns()
        try:
            produced = self.func(list(argv))
        except Exception as exc:  # noqa: BLE001
            raise InvocationError("CRASHED", f"{exc.__class__.__name__}: {exc}") from exc
        if isinstance(produced, InvocationResult):
            return produced
        stdout, exit_status = produced
        return InvocationResult(
            stdout=stdout, exit_status=exit_status, duration_ns=time.time_ns() - start
        )
