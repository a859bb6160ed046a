"""Pipe descriptors with single-owner semantics.

A ``PipeEnd`` owns exactly one OS descriptor until it is closed, detached
or moved onto a standard stream. After any of those it is void, and
closing a void end does nothing, so the descriptor itself is released
exactly once in every process holding a copy.
"""

import fcntl
import os
from dataclasses import dataclass
from typing import Optional

import structlog

from ..models.errors import ResourceExhaustedError

logger = structlog.get_logger(__name__)

# Lowest descriptor that is not a standard stream
FIRST_FREE_FD = 3


class PipeEnd:
    """One side of a pipe: ``"r"`` or ``"w"``."""

    def __init__(self, fd: int, side: str):
        self._fd: Optional[int] = fd
        self.side = side

    def __repr__(self) -> str:
        state = self._fd if self._fd is not None else "void"
        return f"<PipeEnd {self.side} fd={state}>"

    @property
    def closed(self) -> bool:
        return self._fd is None

    def fileno(self) -> int:
        if self._fd is None:
            raise ValueError(f"{self.side} end is no longer owned")
        return self._fd

    def close(self) -> None:
        """Release the descriptor if this end still owns it."""
        fd, self._fd = self._fd, None
        if fd is not None:
            os.close(fd)

    def detach(self) -> int:
        """Hand the descriptor over to the caller; this end becomes void."""
        fd = self.fileno()
        self._fd = None
        return fd

    def move_to(self, target: int) -> None:
        """Rebind ``target`` (0, 1 or 2) to this end, then release the original.

        Used in a child between fork and exec. If the pipe already landed on
        ``target`` the descriptor is kept and only marked inheritable.
        """
        fd = self.fileno()
        if fd == target:
            os.set_inheritable(fd, True)
            self._fd = None
            return
        os.dup2(fd, target)
        self.close()

    def lift(self) -> None:
        """Move this end above the standard streams so no rebinding clobbers it."""
        fd = self.fileno()
        self._fd = fcntl.fcntl(fd, fcntl.F_DUPFD_CLOEXEC, FIRST_FREE_FD)
        os.close(fd)

    def open(self, **kwargs):
        """Transfer the descriptor into a binary file object."""
        mode = "rb" if self.side == "r" else "wb"
        return os.fdopen(self.detach(), mode, **kwargs)

    def __enter__(self) -> "PipeEnd":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


@dataclass
class Channel:
    """A freshly created unidirectional pipe."""

    read: PipeEnd
    write: PipeEnd

    @classmethod
    def open(cls) -> "Channel":
        """Create a pipe.

        Raises:
            ResourceExhaustedError: if the descriptor table is full
        """
        try:
            read_fd, write_fd = os.pipe()
        except OSError as e:
            logger.error("Pipe creation failed", error=str(e))
            raise ResourceExhaustedError("pipe", e) from e
        return cls(read=PipeEnd(read_fd, "r"), write=PipeEnd(write_fd, "w"))

    def close(self) -> None:
        """Close whichever sides this process still owns."""
        try:
            self.read.close()
        finally:
            self.write.close()

    def __enter__(self) -> "Channel":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
