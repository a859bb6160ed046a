"""pipekit: spawn, pipe and supervise child processes."""

from .models import (
    CommandSpec,
    Direction,
    ExitOutcome,
    KilledBySignal,
    NonZeroExit,
    NormalExit,
    PipekitException,
    PipelineResult,
    ResourceExhaustedError,
    SandboxVerdict,
    Signaled,
    TimedOut,
    UsageError,
    VerdictKind,
)
from .services import (
    ChildStream,
    PipelineOrchestrator,
    SandboxSupervisor,
    run_pipeline,
    sandbox,
    sandbox_command,
    spawn,
)

__version__ = "1.0.0"

__all__ = [
    "CommandSpec",
    "Direction",
    "ExitOutcome",
    "NormalExit",
    "Signaled",
    "PipelineResult",
    "SandboxVerdict",
    "VerdictKind",
    "NonZeroExit",
    "KilledBySignal",
    "TimedOut",
    "PipekitException",
    "UsageError",
    "ResourceExhaustedError",
    "ChildStream",
    "spawn",
    "PipelineOrchestrator",
    "run_pipeline",
    "SandboxSupervisor",
    "sandbox",
    "sandbox_command",
]
