"""Integration tests for the pipekit command line."""

import io
import sys

import pytest

from pipekit.cli import main, split_pipeline
from pipekit.models import CommandSpec, UsageError
from pipekit.utils.logging import setup_logging

pytestmark = pytest.mark.integration


@pytest.fixture(autouse=True)
def reset_logging():
    """main() binds the log handler to the per-test stderr; rebind it afterwards."""
    yield
    setup_logging()


class TestSplitPipeline:
    """Test splitting argv on '|' tokens."""

    def test_split(self):
        assert split_pipeline(["ls", "-l", "|", "grep", "py"]) == [
            CommandSpec.of("ls", "-l"),
            CommandSpec.of("grep", "py"),
        ]

    def test_single_command(self):
        assert split_pipeline(["true"]) == [CommandSpec.of("true")]

    @pytest.mark.parametrize(
        "words", [["|", "ls"], ["ls", "|"], ["ls", "|", "|", "wc"], []]
    )
    def test_empty_group_is_usage_error(self, words):
        with pytest.raises(UsageError):
            split_pipeline(words)


class TestPipelineCommand:
    """Test `pipekit pipeline`."""

    def test_success(self, capfd, zombie_guard):
        code = main(["pipeline", "echo", "hi", "|", "tr", "a-z", "A-Z"])
        assert code == 0
        assert capfd.readouterr().out == "HI\n"

    def test_failure(self, zombie_guard):
        assert main(["pipeline", "false"]) == 1

    def test_empty_stage_exits_one(self, capfd):
        assert main(["pipeline", "echo", "|"]) == 1
        assert "Empty command" in capfd.readouterr().err

    def test_no_command(self):
        assert main(["pipeline"]) == 1


class TestPopenCommand:
    """Test `pipekit popen`."""

    def test_read(self, capfd, zombie_guard):
        assert main(["popen", "r", "echo", "hey"]) == 0
        assert capfd.readouterr().out == "hey\n"

    def test_exit_code_passthrough(self, zombie_guard):
        assert main(["popen", "r", "sh", "-c", "exit 4"]) == 4

    def test_write_feeds_child_stdin(self, tmp_path, monkeypatch, zombie_guard):
        target = tmp_path / "out.txt"
        monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(b"shout\n")))
        assert main(["popen", "w", "sh", "-c", f"tr a-z A-Z > '{target}'"]) == 0
        assert target.read_bytes() == b"SHOUT\n"

    def test_write_to_child_that_stops_reading(self, monkeypatch, fd_guard, zombie_guard):
        """Test input left over when the child exits early is dropped, not an error."""
        monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(b"x" * (1 << 20))))
        assert main(["popen", "w", "true"]) == 0


class TestSandboxCommand:
    """Test `pipekit sandbox`."""

    def test_good(self, capfd, zombie_guard):
        assert main(["sandbox", "--timeout", "5", "true"]) == 0
        assert capfd.readouterr().out.strip() == "1"

    def test_timeout(self, capfd, zombie_guard):
        assert main(["sandbox", "--timeout", "0.3", "--verbose", "sleep", "30"]) == 1
        captured = capfd.readouterr()
        assert captured.out.strip() == "0"
        assert "timed out after 0.3 seconds" in captured.err

    def test_bad_exit(self, capfd, zombie_guard):
        assert main(["sandbox", "false"]) == 1
        assert capfd.readouterr().out.strip() == "0"
