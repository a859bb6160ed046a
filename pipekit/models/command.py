"""Command models: what to run and which stream to connect."""

from enum import Enum
from typing import Any, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import UsageError


class Direction(str, Enum):
    """Which side of the child the caller talks to."""

    READ = "r"  # caller reads the child's stdout
    WRITE = "w"  # caller writes the child's stdin

    @classmethod
    def parse(cls, value: Union["Direction", str]) -> "Direction":
        """Accept a Direction or its one-letter tag."""
        try:
            return cls(value)
        except ValueError:
            raise UsageError(
                f"Invalid direction {value!r}: expected 'r' or 'w'"
            ) from None


class CommandSpec(BaseModel):
    """A program to run and its argument vector.

    ``executable`` is resolved through ``PATH`` when the child execs. It
    defaults to ``argv[0]``.
    """

    model_config = ConfigDict(frozen=True)

    argv: Tuple[str, ...] = Field(
        ..., min_length=1, description="Argument vector, argv[0] first"
    )
    executable: str = Field(..., min_length=1, description="Program looked up on PATH")

    @model_validator(mode="before")
    @classmethod
    def _default_executable(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("executable"):
            argv = data.get("argv") or ()
            if argv:
                data = {**data, "executable": argv[0]}
        return data

    @classmethod
    def of(cls, *words: str) -> "CommandSpec":
        """Build a command from its words: ``CommandSpec.of("tr", "a-z", "A-Z")``."""
        return coerce_command(list(words))

    def __str__(self) -> str:
        return " ".join(self.argv)


CommandLike = Union[CommandSpec, Sequence[str]]


def coerce_command(value: CommandLike) -> CommandSpec:
    """Turn a CommandSpec or a list of words into a CommandSpec.

    Raises:
        UsageError: if the value is not a non-empty sequence of strings
    """
    if isinstance(value, CommandSpec):
        return value
    if isinstance(value, (str, bytes)) or value is None:
        raise UsageError(f"Command must be a sequence of words, got {value!r}")
    try:
        return CommandSpec(argv=tuple(value))
    except (ValidationError, TypeError) as e:
        raise UsageError(f"Invalid command {value!r}", details=[str(e)]) from e
