"""Data models for pipekit."""

from .command import CommandLike, CommandSpec, Direction, coerce_command
from .errors import (
    ChildCollectedError,
    ErrorType,
    PipekitException,
    ResourceExhaustedError,
    UnrecognizedStatusError,
    UsageError,
)
from .outcomes import (
    BadReason,
    ExitOutcome,
    KilledBySignal,
    NonZeroExit,
    NormalExit,
    PipelineResult,
    SandboxVerdict,
    Signaled,
    TimedOut,
    VerdictKind,
    exit_outcome_from_status,
    shell_exit_code,
)

__all__ = [
    # Command models
    "CommandLike",
    "CommandSpec",
    "Direction",
    "coerce_command",
    # Error models
    "ErrorType",
    "PipekitException",
    "UsageError",
    "ResourceExhaustedError",
    "ChildCollectedError",
    "UnrecognizedStatusError",
    # Outcome models
    "ExitOutcome",
    "NormalExit",
    "Signaled",
    "exit_outcome_from_status",
    "shell_exit_code",
    "PipelineResult",
    "BadReason",
    "NonZeroExit",
    "KilledBySignal",
    "TimedOut",
    "VerdictKind",
    "SandboxVerdict",
]
