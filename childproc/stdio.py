"Redirection policies for the standard streams of a child process"
from __future__ import annotations
import enum

__all__ = [
    "Stdio",
    "Fileno",
]

class Stdio(enum.Enum):
    """How one standard stream of a child process is connected.

    - `INHERIT`: the child shares the parent's stream.
    - `NULL`: the child reads nothing and its writes are discarded; connected to the null device.
    - `PIPE`: a fresh pipe is created; the child gets one end, and the parent keeps the
      other end, wrapped in a buffered stream on the `childproc.Child`.

    """
    INHERIT = "inherit"
    NULL = "null"
    PIPE = "pipe"

    def __repr__(self) -> str:
        return f"Stdio.{self.name}"

class Fileno(enum.IntEnum):
    "The three standard stream slots, numbered as the child sees them"
    STDIN = 0
    STDOUT = 1
    STDERR = 2

    def child_reads(self) -> bool:
        "True if the child reads from this slot, so the parent writes to its pipe"
        return self is Fileno.STDIN
