"""
pipekit command line interface.

Usage:
  pipekit pipeline ls -l '|' grep py '|' wc -l
  pipekit popen r ls -l
  pipekit popen w tr a-z A-Z < notes.txt
  pipekit sandbox --timeout 2 --verbose sleep 5

Exit codes:
  pipeline  0 success, 1 failure or any internal error
  popen     the child's exit code (128+N if killed by signal N)
  sandbox   0 good, 1 bad or supervisor error; the verdict code
            (1 / 0 / -1) is printed on stdout
"""

import argparse
import shutil
import sys
from typing import List, Optional

import structlog
from rich.console import Console

from .config import settings
from .models.command import CommandSpec, Direction
from .models.errors import PipekitException, UsageError
from .models.outcomes import VerdictKind, shell_exit_code
from .services.pipeline import run_pipeline
from .services.sandbox import sandbox_command
from .services.spawner import spawn
from .utils.logging import setup_logging

logger = structlog.get_logger(__name__)

# Data goes to stdout; everything the CLI has to say goes to stderr.
console = Console(stderr=True)

PIPE_TOKEN = "|"


def split_pipeline(words: List[str]) -> List[CommandSpec]:
    """Split ``words`` on literal ``|`` tokens into commands."""
    groups: List[List[str]] = [[]]
    for word in words:
        if word == PIPE_TOKEN:
            groups.append([])
        else:
            groups[-1].append(word)
    if any(not group for group in groups):
        raise UsageError("Empty command in pipeline")
    return [CommandSpec.of(*group) for group in groups]


def cmd_pipeline(args: argparse.Namespace) -> int:
    if not args.argv:
        console.print("[red]Error:[/red] no command given")
        return 1
    result = run_pipeline(split_pipeline(args.argv))
    if result.error is not None:
        console.print(f"[red]Error:[/red] {result.error.message}")
    return result.exit_code


def cmd_popen(args: argparse.Namespace) -> int:
    if not args.argv:
        console.print("[red]Error:[/red] no command given")
        return 1
    direction = Direction.parse(args.mode)
    stream = spawn(args.argv, direction)
    try:
        if direction is Direction.READ:
            with stream.file() as f:
                shutil.copyfileobj(f, sys.stdout.buffer)
            sys.stdout.buffer.flush()
        else:
            try:
                with stream.file() as f:
                    shutil.copyfileobj(sys.stdin.buffer, f)
            except BrokenPipeError:
                # the child stopped reading
                logger.debug("Child closed its stdin early", pid=stream.pid)
    finally:
        outcome = stream.close()
    return shell_exit_code(outcome)


def cmd_sandbox(args: argparse.Namespace) -> int:
    if not args.argv:
        console.print("[red]Error:[/red] no command given")
        return 1
    verdict = sandbox_command(args.argv, timeout=args.timeout, verbose=args.verbose)
    print(verdict.code)
    return 0 if verdict.kind is VerdictKind.GOOD else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pipekit",
        description="Spawn, pipe and supervise child processes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: settings)")
    parser.add_argument(
        "--log-format", choices=["console", "json"], default=None, help="Log renderer"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    pipeline_p = subparsers.add_parser("pipeline", help="Run commands joined by '|'")
    pipeline_p.add_argument("argv", nargs=argparse.REMAINDER)

    popen_p = subparsers.add_parser("popen", help="Read from or write to one command")
    popen_p.add_argument("mode", choices=["r", "w"], help="r: read its stdout, w: feed its stdin")
    popen_p.add_argument("argv", nargs=argparse.REMAINDER)

    sandbox_p = subparsers.add_parser("sandbox", help="Run one command under a timeout")
    sandbox_p.add_argument(
        "--timeout",
        type=float,
        default=settings.default_timeout,
        help="Seconds before the command is killed (0: no timeout)",
    )
    sandbox_p.add_argument("-v", "--verbose", action="store_true", help="Print the verdict")
    sandbox_p.add_argument("argv", nargs=argparse.REMAINDER)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(level=args.log_level, log_format=args.log_format)

    handlers = {
        "pipeline": cmd_pipeline,
        "popen": cmd_popen,
        "sandbox": cmd_sandbox,
    }

    try:
        return handlers[args.command](args)
    except PipekitException as e:
        console.print(f"[red]Error:[/red] {e.message}")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
