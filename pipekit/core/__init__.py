"""Low-level descriptor and child process primitives."""

from .channel import Channel, PipeEnd
from .child import ChildHandle, Collector, exec_command, fork_child

__all__ = [
    "Channel",
    "PipeEnd",
    "ChildHandle",
    "Collector",
    "exec_command",
    "fork_child",
]
