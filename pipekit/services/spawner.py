"""Spawn one program with its stdin or stdout connected to the caller.

This is the ``popen`` building block: the child gets one end of a fresh
pipe as a standard stream, the caller keeps the other end.
"""

import os
from typing import BinaryIO, Union

import structlog

from ..core.channel import Channel, PipeEnd
from ..core.child import ChildHandle, Collector, exec_command, fork_child
from ..models.command import CommandLike, Direction, coerce_command
from ..models.errors import ResourceExhaustedError
from ..models.outcomes import ExitOutcome

logger = structlog.get_logger(__name__)


class ChildStream:
    """The caller's end of a spawned child's pipe, plus the child itself.

    The caller owns both: the end must be closed and the child collected.
    ``close()`` does both, in that order, so a child blocked on a full or
    empty pipe sees EOF/EPIPE before the caller waits for it.
    """

    def __init__(self, end: PipeEnd, child: ChildHandle, direction: Direction):
        self.end = end
        self.child = child
        self.direction = direction

    def __repr__(self) -> str:
        return f"<ChildStream {self.direction.value} {self.end!r} {self.child!r}>"

    @property
    def pid(self) -> int:
        return self.child.pid

    def fileno(self) -> int:
        return self.end.fileno()

    def file(self, **kwargs) -> BinaryIO:
        """Move the descriptor into a binary file object.

        Closing that file becomes the caller's job; ``close()`` will then
        only collect the child.
        """
        return self.end.open(**kwargs)

    def close(self) -> ExitOutcome:
        """Close the caller's end, collect the child and return its outcome."""
        try:
            self.end.close()
        finally:
            outcome = self.child.collect()
        return outcome

    def __enter__(self) -> "ChildStream":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if not self.child.collected:
            self.close()


def spawn(
    command: CommandLike,
    direction: Union[Direction, str],
    waitpid: Collector = os.waitpid,
) -> ChildStream:
    """Start ``command`` with one standard stream redirected to a new pipe.

    Args:
        command: Program and arguments to run
        direction: ``"r"`` to read the child's stdout, ``"w"`` to write
            the child's stdin
        waitpid: Collector used when the child is eventually collected

    Returns:
        ChildStream holding the caller's end of the pipe and the child

    Raises:
        UsageError: invalid command or direction; nothing was created
        ResourceExhaustedError: pipe or fork failed; nothing is left open
    """
    command = coerce_command(command)
    direction = Direction.parse(direction)

    channel = Channel.open()
    if direction is Direction.READ:
        child_end, parent_end, target = channel.write, channel.read, 1
    else:
        child_end, parent_end, target = channel.read, channel.write, 0

    try:
        pid = fork_child(
            lambda: exec_command(
                command,
                redirects=[(child_end, target)],
                discard=[parent_end],
            )
        )
    except ResourceExhaustedError:
        channel.close()
        raise

    child_end.close()
    logger.debug(
        "Spawned child",
        pid=pid,
        command=str(command),
        direction=direction.value,
        fd=parent_end.fileno(),
    )
    return ChildStream(parent_end, ChildHandle(pid, command, waitpid), direction)
