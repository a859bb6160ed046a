"""Integration tests for spawn() with real child processes."""

import os

import pytest

from conftest import CountingCollector
from pipekit import CommandSpec, Direction, NormalExit, UsageError, spawn
from pipekit.models import ResourceExhaustedError, Signaled

pytestmark = pytest.mark.integration


class TestSpawnRead:
    """Test reading a child's stdout."""

    def test_read_output(self, fd_guard, zombie_guard):
        stream = spawn(["echo", "hello"], "r")
        with stream.file() as f:
            data = f.read()
        assert data == b"hello\n"
        assert stream.close() == NormalExit(0)

    def test_read_with_raw_descriptor(self, fd_guard, zombie_guard):
        stream = spawn(CommandSpec.of("printf", "abc"), Direction.READ)
        chunks = []
        while True:
            chunk = os.read(stream.fileno(), 4096)
            if not chunk:
                break
            chunks.append(chunk)
        assert b"".join(chunks) == b"abc"
        assert stream.close() == NormalExit(0)

    def test_context_manager_collects(self, fd_guard, zombie_guard):
        with spawn(["true"], "r") as stream:
            pass
        assert stream.child.collected

    def test_reader_closing_early_sends_sigpipe(self, fd_guard, zombie_guard):
        """Test a child writing into a closed pipe dies of SIGPIPE, not EPIPE."""
        stream = spawn(["yes"], "r")
        os.read(stream.fileno(), 16)
        outcome = stream.close()
        assert outcome == Signaled(13)


class TestSpawnWrite:
    """Test feeding a child's stdin."""

    def test_write_input(self, tmp_path, fd_guard, zombie_guard):
        target = tmp_path / "out.txt"
        stream = spawn(["sh", "-c", f"tr a-z A-Z > '{target}'"], "w")
        with stream.file() as f:
            f.write(b"shout\n")
        assert stream.close() == NormalExit(0)
        assert target.read_bytes() == b"SHOUT\n"

    def test_child_sees_eof_when_caller_closes(self, tmp_path, fd_guard, zombie_guard):
        """Test the caller's close is the only thing keeping the child's stdin open."""
        target = tmp_path / "count.txt"
        stream = spawn(["sh", "-c", f"wc -c > '{target}'"], "w")
        os.write(stream.fileno(), b"12345")
        assert stream.close() == NormalExit(0)
        assert target.read_text().strip() == "5"


class TestSpawnErrors:
    """Test spawn failure modes."""

    def test_missing_program_surfaces_on_collection(self, fd_guard, zombie_guard):
        """Test exec failure is only visible as the child's exit status."""
        stream = spawn(["pipekit-no-such-program"], "r")
        assert os.read(stream.fileno(), 16) == b""
        assert stream.close() == NormalExit(127)

    def test_invalid_direction(self, fd_guard, zombie_guard):
        with pytest.raises(UsageError):
            spawn(["echo"], "x")

    def test_empty_command(self, fd_guard, zombie_guard):
        with pytest.raises(UsageError):
            spawn([], "r")

    def test_fork_failure_releases_pipe(self, fd_guard, zombie_guard, monkeypatch):
        def failing_fork():
            raise OSError(11, "Resource temporarily unavailable")

        monkeypatch.setattr("pipekit.core.child.os.fork", failing_fork)
        with pytest.raises(ResourceExhaustedError):
            spawn(["echo", "hi"], "r")

    def test_collected_exactly_once(self, fd_guard, zombie_guard):
        collector = CountingCollector()
        stream = spawn(["true"], "r", waitpid=collector)
        stream.close()
        assert dict(collector.collected) == {stream.pid: 1}
