"""Outcome models: how a child ended, how a pipeline ended, sandbox verdicts."""

import os
import signal
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

from .errors import PipekitException, UnrecognizedStatusError


@dataclass(frozen=True)
class NormalExit:
    """The child called exit() (or returned from main) with ``code``."""

    code: int

    @property
    def ok(self) -> bool:
        return self.code == 0

    def describe(self) -> str:
        return f"exited with code {self.code}"


@dataclass(frozen=True)
class Signaled:
    """The child was terminated by ``signal``."""

    signal: int

    @property
    def ok(self) -> bool:
        return False

    @property
    def signal_name(self) -> str:
        try:
            return signal.Signals(self.signal).name
        except ValueError:
            return f"signal {self.signal}"

    def describe(self) -> str:
        return signal.strsignal(self.signal) or self.signal_name


ExitOutcome = Union[NormalExit, Signaled]


def exit_outcome_from_status(status: int) -> ExitOutcome:
    """Classify a raw ``waitpid`` status.

    Raises:
        UnrecognizedStatusError: for stopped/continued or otherwise
            unexpected statuses
    """
    if os.WIFEXITED(status):
        return NormalExit(os.WEXITSTATUS(status))
    if os.WIFSIGNALED(status):
        return Signaled(os.WTERMSIG(status))
    raise UnrecognizedStatusError(status)


def shell_exit_code(outcome: ExitOutcome) -> int:
    """Exit code a shell would report for ``outcome`` (128+N for signals)."""
    if isinstance(outcome, NormalExit):
        return outcome.code
    return 128 + outcome.signal


@dataclass
class PipelineResult:
    """Aggregate result of one pipeline run.

    Success only if every stage exited normally with code 0. A pipeline
    that could not be fully set up carries the setup ``error`` and is a
    failure regardless of the stages that did run.
    """

    outcomes: Tuple[ExitOutcome, ...] = field(default_factory=tuple)
    error: Optional[PipekitException] = None

    @property
    def success(self) -> bool:
        return self.error is None and all(o.ok for o in self.outcomes)

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def __bool__(self) -> bool:
        return self.success


# Sandbox verdicts


@dataclass(frozen=True)
class NonZeroExit:
    code: int

    def describe(self) -> str:
        return f"exited with code {self.code}"


@dataclass(frozen=True)
class KilledBySignal:
    signal: int

    def describe(self) -> str:
        return Signaled(self.signal).describe()


@dataclass(frozen=True)
class TimedOut:
    timeout: float

    def describe(self) -> str:
        return f"timed out after {self.timeout:g} seconds"


BadReason = Union[NonZeroExit, KilledBySignal, TimedOut]


class VerdictKind(str, Enum):
    GOOD = "good"
    BAD = "bad"
    SUPERVISOR_ERROR = "supervisor_error"


@dataclass(frozen=True)
class SandboxVerdict:
    """Classification of one supervised execution.

    ``code`` is the process-level convention: 1 good, 0 bad, -1 error.
    """

    kind: VerdictKind
    reason: Optional[BadReason] = None
    error: Optional[str] = None

    @classmethod
    def good(cls) -> "SandboxVerdict":
        return cls(VerdictKind.GOOD)

    @classmethod
    def bad(cls, reason: BadReason) -> "SandboxVerdict":
        return cls(VerdictKind.BAD, reason=reason)

    @classmethod
    def supervisor_error(cls, error: str) -> "SandboxVerdict":
        return cls(VerdictKind.SUPERVISOR_ERROR, error=error)

    @property
    def code(self) -> int:
        return {
            VerdictKind.GOOD: 1,
            VerdictKind.BAD: 0,
            VerdictKind.SUPERVISOR_ERROR: -1,
        }[self.kind]

    @property
    def timed_out(self) -> bool:
        return isinstance(self.reason, TimedOut)

    def describe(self) -> str:
        """One-line human readable classification."""
        if self.kind is VerdictKind.GOOD:
            return "Nice function!"
        if self.kind is VerdictKind.BAD:
            return f"Bad function: {self.reason.describe()}"
        return f"Sandbox error: {self.error}"
