"""Child process creation and collection.

Everything that runs between ``fork()`` and ``exec()`` lives here. The
child side never logs and never returns into the caller's stack: it
always leaves through ``os._exit``.
"""

import fcntl
import os
import signal
import sys
import traceback
from typing import Callable, Iterable, Optional, Tuple

import structlog

from ..config import settings
from ..models.command import CommandSpec
from ..models.errors import ChildCollectedError, ResourceExhaustedError
from ..models.outcomes import ExitOutcome, exit_outcome_from_status
from .channel import FIRST_FREE_FD, PipeEnd

logger = structlog.get_logger(__name__)

# waitpid(pid, options) -> (pid, status)
Collector = Callable[[int, int], Tuple[int, int]]


class ChildHandle:
    """A spawned child, collectable exactly once."""

    def __init__(
        self,
        pid: int,
        command: Optional[CommandSpec] = None,
        waitpid: Collector = os.waitpid,
    ):
        self._pid = pid
        self._command = command
        self._waitpid = waitpid
        self._status: Optional[int] = None

    def __repr__(self) -> str:
        state = "collected" if self.collected else "running"
        return f"<ChildHandle pid={self._pid} {state}>"

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def command(self) -> Optional[CommandSpec]:
        return self._command

    @property
    def collected(self) -> bool:
        return self._status is not None

    def wait_status(self) -> int:
        """Block until the child terminates and return the raw wait status.

        An exception from the underlying wait (including an interruption)
        leaves the handle uncollected.

        Raises:
            ChildCollectedError: if this handle was already collected
        """
        if self._status is not None:
            raise ChildCollectedError(self._pid)
        _, status = self._waitpid(self._pid, 0)
        self._status = status
        return status

    def collect(self) -> ExitOutcome:
        """Wait for the child and classify how it terminated."""
        outcome = exit_outcome_from_status(self.wait_status())
        logger.debug(
            "Child collected",
            pid=self._pid,
            command=str(self._command) if self._command else None,
            outcome=outcome.describe(),
        )
        return outcome

    def kill(self, sig: Optional[int] = None) -> None:
        """Send ``sig`` (default: the configured kill signal) to the child."""
        if self.collected:
            raise ChildCollectedError(self._pid)
        os.kill(self._pid, sig if sig is not None else settings.kill_signal)


def fork_child(child_main: Callable[[], Optional[int]]) -> int:
    """Fork and run ``child_main`` in the child; return the pid in the parent.

    The value returned by ``child_main`` becomes the child's exit status.
    ``SystemExit`` is honoured, any other exception prints a traceback and
    exits with status 1.

    Raises:
        ResourceExhaustedError: if the process could not be created
    """
    # Unflushed parent output would otherwise be written twice.
    for stream in (sys.stdout, sys.stderr):
        if stream is not None:
            stream.flush()

    try:
        pid = os.fork()
    except OSError as e:
        logger.error("Fork failed", error=str(e))
        raise ResourceExhaustedError("child process", e) from e

    if pid == 0:
        _run_child(child_main)
    return pid


def _run_child(child_main: Callable[[], Optional[int]]) -> None:
    status = 1
    try:
        status = child_main() or 0
    except SystemExit as e:
        status = _system_exit_status(e)
    except BaseException:
        traceback.print_exc()
        status = 1
    finally:
        try:
            for stream in (sys.stdout, sys.stderr):
                if stream is not None:
                    stream.flush()
        finally:
            os._exit(status)


def _system_exit_status(exc: SystemExit) -> int:
    code = exc.code
    if code is None:
        return 0
    if isinstance(code, int):
        return code & 0xFF
    print(code, file=sys.stderr)
    return 1


def child_diagnostic(message: str) -> None:
    """Write a line to the child's stderr without touching Python buffers."""
    try:
        os.write(2, message.encode("utf-8", errors="replace"))
    except OSError:
        pass


def _lift_fd(fd: int) -> int:
    # The caller's descriptor stays open; the child only uses the copy.
    return fcntl.fcntl(fd, fcntl.F_DUPFD_CLOEXEC, FIRST_FREE_FD)


def _restore_signals() -> None:
    # Python ignores SIGPIPE and SIGXFSZ; ignored dispositions survive exec.
    for name in ("SIGPIPE", "SIGXFSZ"):
        if hasattr(signal, name):
            signal.signal(getattr(signal, name), signal.SIG_DFL)


def exec_command(
    command: CommandSpec,
    redirects: Iterable[Tuple[PipeEnd, int]] = (),
    discard: Iterable[PipeEnd] = (),
    borrowed: Iterable[Tuple[int, int]] = (),
) -> int:
    """Child side of a spawn: rebind streams, release the rest, exec.

    Args:
        command: Program to exec
        redirects: (end, target) pairs; each end is moved onto target
        discard: Ends this child does not use, closed before exec
        borrowed: (fd, target) pairs of caller-owned descriptors duplicated
            onto target and left open

    Returns:
        The configured exec failure status. Only returns if rebinding or
        exec failed.
    """
    redirects = list(redirects)
    borrowed = list(borrowed)
    try:
        for end in discard:
            end.close()
        # No source may sit on a target it is not meant for
        targets = {target for _, target in redirects} | {target for _, target in borrowed}
        for end, target in redirects:
            if end.fileno() in targets and end.fileno() != target:
                end.lift()
        borrowed = [
            (_lift_fd(fd) if fd in targets and fd != target else fd, target)
            for fd, target in borrowed
        ]
        for fd, target in borrowed:
            if fd != target:
                os.dup2(fd, target)
        for end, target in redirects:
            end.move_to(target)
        _restore_signals()
        os.execvp(command.executable, list(command.argv))
    except OSError as e:
        child_diagnostic(f"pipekit: {command.executable}: {e.strerror or e}\n")
    return settings.exec_failure_status
