"""Pytest configuration and shared fixtures."""

import os
import sys
from collections import Counter
from typing import Dict, Set, Tuple

import pytest

# Keep test runs independent of a developer's .env / environment
os.environ.setdefault("PIPEKIT_LOG_LEVEL", "DEBUG")
os.environ.setdefault("PIPEKIT_EXEC_FAILURE_STATUS", "127")

PROC_FD = "/proc/self/fd"

requires_proc = pytest.mark.skipif(
    not os.path.isdir(PROC_FD), reason="needs /proc/self/fd to list descriptors"
)
requires_posix = pytest.mark.skipif(
    sys.platform == "win32", reason="fork/exec is POSIX only"
)


def open_fds() -> Set[int]:
    """Descriptors currently open in this process."""
    return {int(name) for name in os.listdir(PROC_FD)}


def assert_no_children() -> None:
    """Fail if this process still has a child, running or zombie."""
    try:
        pid, status = os.waitpid(-1, os.WNOHANG)
    except ChildProcessError:
        return
    pytest.fail(f"uncollected child left behind (pid={pid}, status={status})")


class CountingCollector:
    """``os.waitpid`` stand-in that counts successful collections per pid."""

    def __init__(self, statuses: Dict[int, int] = None):
        self._statuses = statuses
        self.calls: Counter = Counter()
        self.collected: Counter = Counter()

    def __call__(self, pid: int, options: int) -> Tuple[int, int]:
        self.calls[pid] += 1
        if self._statuses is None:
            result = os.waitpid(pid, options)
        else:
            result = (pid, self._statuses[pid])
        self.collected[pid] += 1
        return result


@pytest.fixture
def fd_guard():
    """Assert the test leaves exactly the descriptors it found."""
    if not os.path.isdir(PROC_FD):
        pytest.skip("needs /proc/self/fd to list descriptors")
    before = open_fds()
    yield before
    leaked = open_fds() - before
    assert not leaked, f"descriptors leaked: {sorted(leaked)}"


@pytest.fixture
def zombie_guard():
    """Assert the test leaves no child process behind."""
    assert_no_children()
    yield
    assert_no_children()


@pytest.fixture
def counting_collector():
    """A real ``waitpid`` wrapped with per-pid counters."""
    return CountingCollector()


@pytest.fixture(scope="session", autouse=True)
def structured_logging():
    """Route pipekit's structlog output through stdlib logging on stderr."""
    from pipekit.utils.logging import setup_logging

    setup_logging()
