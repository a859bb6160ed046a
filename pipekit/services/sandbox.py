"""Run one unit of work in a child process under a wall-clock timeout.

The supervisor forks, arms a one-shot ``ITIMER_REAL`` and blocks in
``waitpid`` for that child. When the timer fires first, the ``SIGALRM``
handler raises out of the wait (Python would otherwise retry the
interrupted call), the child is killed and collected, and the verdict is
``BAD(TimedOut)``.
"""

import math
import os
import signal
import sys
import threading
from contextlib import contextmanager
from functools import partial
from typing import Callable, Iterator, Optional, TextIO

import structlog

from ..config import settings
from ..core.child import ChildHandle, Collector, exec_command, fork_child
from ..models.command import CommandLike, coerce_command
from ..models.errors import (
    ResourceExhaustedError,
    UnrecognizedStatusError,
    UsageError,
)
from ..models.outcomes import (
    KilledBySignal,
    NonZeroExit,
    NormalExit,
    SandboxVerdict,
    TimedOut,
    exit_outcome_from_status,
)

logger = structlog.get_logger(__name__)


class _WaitInterrupted(Exception):
    """The deadline expired while the supervisor was blocked in a wait."""


class _Deadline:
    """Per-call timer and SIGALRM handler.

    The handler only raises while ``waiting()`` is active; outside of it,
    expiry is recorded in ``expired`` and checked on entry.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self.expired = False
        self._waiting = False
        self._previous_handler = None
        self._installed = False

    def _on_alarm(self, signum, frame) -> None:
        self.expired = True
        if self._waiting:
            raise _WaitInterrupted()

    def install(self) -> None:
        self._previous_handler = signal.signal(signal.SIGALRM, self._on_alarm)
        self._installed = True

    def arm(self) -> None:
        # 0 leaves the timer disarmed: no timeout
        if self.timeout > 0:
            signal.setitimer(signal.ITIMER_REAL, self.timeout)

    def disarm(self) -> None:
        signal.setitimer(signal.ITIMER_REAL, 0)

    def uninstall(self) -> None:
        if not self._installed:
            return
        self.disarm()
        previous = self._previous_handler
        signal.signal(
            signal.SIGALRM, previous if previous is not None else signal.SIG_DFL
        )
        self._installed = False

    @contextmanager
    def waiting(self) -> Iterator[None]:
        self._waiting = True
        try:
            if self.expired:
                raise _WaitInterrupted()
            yield
        finally:
            self._waiting = False


class SandboxSupervisor:
    """Supervises isolated executions and classifies how they ended.

    Must be used from the main thread: SIGALRM is only delivered there.
    Calls are not reentrant, since the handler and timer are process-wide.
    """

    def __init__(self, waitpid: Collector = os.waitpid, stream: Optional[TextIO] = None):
        """Initialize the supervisor.

        Args:
            waitpid: Collector used for the supervised child
            stream: Where verbose diagnostics go, stderr by default
        """
        self._waitpid = waitpid
        self._stream = stream

    def run(
        self,
        work: Callable[[], object],
        timeout: float,
        verbose: bool = False,
    ) -> SandboxVerdict:
        """Call ``work()`` in a child process.

        A normal return exits the child with 0, ``sys.exit(n)`` with n and
        an uncaught exception with 1.

        Args:
            work: Zero-argument callable
            timeout: Seconds before the child is killed; 0 disables the timer
            verbose: Print a one-line classification

        Raises:
            UsageError: non-callable work, invalid timeout, or not on the
                main thread
        """
        if not callable(work):
            raise UsageError(f"Work must be callable, got {type(work).__name__}")
        label = getattr(work, "__qualname__", None) or repr(work)
        return self._supervise(partial(_call_work, work), timeout, verbose, label)

    def run_command(
        self,
        command: CommandLike,
        timeout: float,
        verbose: bool = False,
    ) -> SandboxVerdict:
        """Run ``command`` in a child process under the same rules as ``run``."""
        spec = coerce_command(command)
        return self._supervise(partial(exec_command, spec), timeout, verbose, str(spec))

    def _supervise(
        self,
        child_main: Callable[[], object],
        timeout: float,
        verbose: bool,
        label: str,
    ) -> SandboxVerdict:
        timeout = _check_timeout(timeout)
        if threading.current_thread() is not threading.main_thread():
            raise UsageError("The sandbox supervisor must run on the main thread")

        try:
            pid = fork_child(child_main)
        except ResourceExhaustedError as e:
            return self._report(SandboxVerdict.supervisor_error(e.message), verbose, label)

        child = ChildHandle(pid, waitpid=self._waitpid)
        logger.debug("Supervising child", pid=pid, work=label, timeout=timeout)

        deadline = _Deadline(timeout)
        deadline.install()
        try:
            verdict = self._wait(child, deadline)
        finally:
            deadline.uninstall()
        return self._report(verdict, verbose, label)

    def _wait(self, child: ChildHandle, deadline: _Deadline) -> SandboxVerdict:
        deadline.arm()
        try:
            with deadline.waiting():
                status = child.wait_status()
        except _WaitInterrupted:
            deadline.disarm()
            self._kill_and_collect(child)
            return SandboxVerdict.bad(TimedOut(deadline.timeout))
        except OSError as e:
            logger.error("Wait for supervised child failed", pid=child.pid, error=str(e))
            deadline.disarm()
            self._kill_and_collect(child)
            return SandboxVerdict.supervisor_error(f"wait failed: {e}")
        except BaseException:
            deadline.disarm()
            self._kill_and_collect(child)
            raise
        finally:
            deadline.disarm()

        try:
            outcome = exit_outcome_from_status(status)
        except UnrecognizedStatusError as e:
            logger.error("Unrecognized child status", pid=child.pid, status=status)
            return SandboxVerdict.supervisor_error(e.message)

        if isinstance(outcome, NormalExit):
            if outcome.code == 0:
                return SandboxVerdict.good()
            return SandboxVerdict.bad(NonZeroExit(outcome.code))
        return SandboxVerdict.bad(KilledBySignal(outcome.signal))

    def _kill_and_collect(self, child: ChildHandle) -> None:
        """Kill an overrunning child and remove it from the process table.

        If the child was reaped in the same instant the deadline fired,
        there is nothing left to kill or collect.
        """
        if child.collected:
            return
        try:
            child.kill()
        except ProcessLookupError:
            pass
        try:
            child.wait_status()
        except ChildProcessError:
            logger.debug("Supervised child already reaped", pid=child.pid)
        except OSError as e:
            logger.error("Supervised child could not be collected", pid=child.pid, error=str(e))

    def _report(self, verdict: SandboxVerdict, verbose: bool, label: str) -> SandboxVerdict:
        logger.info(
            "Sandbox verdict",
            work=label,
            verdict=verdict.kind.value,
            code=verdict.code,
            reason=verdict.reason.describe() if verdict.reason else None,
            error=verdict.error,
        )
        if verbose:
            stream = self._stream or sys.stderr
            print(verdict.describe(), file=stream)
            stream.flush()
        return verdict


def _call_work(work: Callable[[], object]) -> int:
    work()
    return 0


def _check_timeout(timeout: float) -> float:
    try:
        value = float(timeout)
    except (TypeError, ValueError):
        raise UsageError(f"Timeout must be a number of seconds, got {timeout!r}") from None
    if value < 0 or not math.isfinite(value):
        raise UsageError(f"Timeout must be a finite number >= 0, got {timeout!r}")
    return value


def sandbox(
    work: Callable[[], object],
    timeout: Optional[float] = None,
    verbose: bool = False,
) -> SandboxVerdict:
    """Supervise ``work()``; ``timeout`` defaults to ``settings.default_timeout``."""
    if timeout is None:
        timeout = settings.default_timeout
    return SandboxSupervisor().run(work, timeout, verbose=verbose)


def sandbox_command(
    command: CommandLike,
    timeout: Optional[float] = None,
    verbose: bool = False,
) -> SandboxVerdict:
    """Supervise ``command``; ``timeout`` defaults to ``settings.default_timeout``."""
    if timeout is None:
        timeout = settings.default_timeout
    return SandboxSupervisor().run_command(command, timeout, verbose=verbose)
