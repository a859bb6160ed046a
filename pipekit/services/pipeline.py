"""Run commands as a connected pipeline, ``cmd1 | cmd2 | ... | cmdN``."""

import os
from functools import partial
from typing import Iterable, List, Optional, Tuple

import structlog

from ..core.channel import Channel, PipeEnd
from ..core.child import ChildHandle, Collector, exec_command, fork_child
from ..models.command import CommandLike, CommandSpec, coerce_command
from ..models.errors import PipekitException, ResourceExhaustedError
from ..models.outcomes import ExitOutcome, PipelineResult

logger = structlog.get_logger(__name__)


class PipelineOrchestrator:
    """Spawns one child per command, wires them with pipes, collects them all.

    Only the children created by a ``run()`` call are collected by it, so
    the orchestrator can share a process with unrelated child processes.
    """

    def __init__(self, waitpid: Collector = os.waitpid):
        """Initialize the orchestrator.

        Args:
            waitpid: Collector used for every stage, ``os.waitpid`` by default
        """
        self._waitpid = waitpid

    def run(
        self,
        commands: Iterable[CommandLike],
        stdin: Optional[int] = None,
        stdout: Optional[int] = None,
    ) -> PipelineResult:
        """Run ``commands`` as one pipeline and wait for every stage.

        Args:
            commands: Stages, left to right
            stdin: Caller-owned descriptor for the first stage's input
                (inherited stdin if None); never closed here
            stdout: Caller-owned descriptor for the last stage's output
                (inherited stdout if None); never closed here

        Returns:
            PipelineResult, successful only if every stage exited with 0

        Raises:
            UsageError: if any command is invalid; nothing was spawned
        """
        specs = [coerce_command(c) for c in commands]
        if not specs:
            logger.debug("Empty pipeline, nothing to run")
            return PipelineResult()

        children: List[ChildHandle] = []
        error: Optional[PipekitException] = None
        try:
            try:
                self._launch(specs, children, stdin, stdout)
            except ResourceExhaustedError as e:
                error = e
                logger.error(
                    "Pipeline setup failed",
                    stage=len(children),
                    stages=len(specs),
                    **e.to_dict(),
                )
                self._abort(children)
        finally:
            outcomes, collect_error = self._collect(children)

        result = PipelineResult(outcomes=tuple(outcomes), error=error or collect_error)
        logger.info(
            "Pipeline finished",
            stages=len(specs),
            success=result.success,
            outcomes=[o.describe() for o in outcomes],
        )
        return result

    def _launch(
        self,
        specs: List[CommandSpec],
        children: List[ChildHandle],
        stdin: Optional[int],
        stdout: Optional[int],
    ) -> None:
        """Fork every stage, appending each child to ``children`` as it starts."""
        last = len(specs) - 1
        prev_read: Optional[PipeEnd] = None
        channel: Optional[Channel] = None
        try:
            for i, command in enumerate(specs):
                channel = Channel.open() if i < last else None
                pid = fork_child(
                    partial(
                        _stage_main,
                        command,
                        prev_read,
                        channel,
                        stdin if i == 0 else None,
                        stdout if i == last else None,
                    )
                )
                children.append(ChildHandle(pid, command, self._waitpid))
                logger.debug("Started pipeline stage", stage=i, pid=pid, command=str(command))

                if prev_read is not None:
                    prev_read.close()
                    prev_read = None
                if channel is not None:
                    channel.write.close()
                    prev_read = channel.read
                    channel = None
        finally:
            if prev_read is not None:
                prev_read.close()
            if channel is not None:
                channel.close()

    def _abort(self, children: List[ChildHandle]) -> None:
        """Kill stages started before a setup failure so collection cannot block.

        A stage may still be reading an inherited or caller-supplied stdin
        that nobody will close.
        """
        for child in children:
            try:
                child.kill()
            except ProcessLookupError:
                logger.debug("Stage already gone", pid=child.pid)

    def _collect(
        self, children: List[ChildHandle]
    ) -> Tuple[List[ExitOutcome], Optional[PipekitException]]:
        """Collect every child exactly once, even if some collections fail."""
        outcomes: List[ExitOutcome] = []
        error: Optional[PipekitException] = None
        for child in children:
            try:
                outcomes.append(child.collect())
            except PipekitException as e:
                logger.error("Unclassifiable stage status", pid=child.pid, error=e.message)
                error = error or e
            except ChildProcessError as e:
                logger.error("Stage could not be collected", pid=child.pid, error=str(e))
                error = error or PipekitException(f"Child {child.pid} could not be collected: {e}")
        return outcomes, error


def _stage_main(
    command: CommandSpec,
    prev_read: Optional[PipeEnd],
    channel: Optional[Channel],
    stdin: Optional[int],
    stdout: Optional[int],
) -> int:
    """Child side of one stage: read from the previous pipe, write to the next."""
    redirects = []
    discard = []
    borrowed = []
    if prev_read is not None:
        redirects.append((prev_read, 0))
    elif stdin is not None:
        borrowed.append((stdin, 0))
    if channel is not None:
        discard.append(channel.read)
        redirects.append((channel.write, 1))
    elif stdout is not None:
        borrowed.append((stdout, 1))
    return exec_command(command, redirects=redirects, discard=discard, borrowed=borrowed)


def run_pipeline(
    commands: Iterable[CommandLike],
    stdin: Optional[int] = None,
    stdout: Optional[int] = None,
) -> PipelineResult:
    """Run ``commands`` as a pipeline with the default collector."""
    return PipelineOrchestrator().run(commands, stdin=stdin, stdout=stdout)
