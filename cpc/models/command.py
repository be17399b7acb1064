"""
Command Model

Typed description of an external process invocation. Commands are always
spawned from an argument list, never through a shell.
"""

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union


@dataclass(frozen=True)
class Command:
    """An external program plus its arguments, working directory and env overrides."""

    program: str
    args: tuple[str, ...] = ()
    cwd: Optional[Path] = None
    env: Dict[str, str] = field(default_factory=dict, hash=False, compare=False)

    def __post_init__(self):
        # Accept any iterable of str-like arguments, store an immutable tuple
        object.__setattr__(self, "args", tuple(str(arg) for arg in self.args))

    @property
    def argv(self) -> list[str]:
        """Full argument vector passed to the process spawn API."""
        return [self.program, *self.args]

    def display(self) -> str:
        """Shell-quoted rendering for logs (never executed)."""
        return shlex.join(self.argv)

    def with_args(self, *extra: Union[str, Path]) -> "Command":
        """Return a copy with additional arguments appended."""
        return Command(
            program=self.program,
            args=(*self.args, *(str(arg) for arg in extra)),
            cwd=self.cwd,
            env=dict(self.env),
        )

    def __str__(self) -> str:
        return self.display()
