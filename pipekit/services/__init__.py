"""Process orchestration services.

This package provides the three orchestration primitives:
- spawner.py: One child with a redirected standard stream (popen)
- pipeline.py: Children connected stdout-to-stdin (cmd1 | cmd2 | ...)
- sandbox.py: One supervised child with a wall-clock timeout
"""

from .spawner import ChildStream, spawn
from .pipeline import PipelineOrchestrator, run_pipeline
from .sandbox import SandboxSupervisor, sandbox, sandbox_command

__all__ = [
    "ChildStream",
    "spawn",
    "PipelineOrchestrator",
    "run_pipeline",
    "SandboxSupervisor",
    "sandbox",
    "sandbox_command",
]
