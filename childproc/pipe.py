from __future__ import annotations
from dataclasses import dataclass
import typing as t

__all__ = [
    "Pipe",
]

@dataclass(frozen=True)
class Pipe:
    """A pair of raw descriptors, as created by the backend's create_pipe.

    Bytes written to `write` become readable from `read`, in order, until `write` is
    closed, at which point `read` reaches end of stream.

    """
    read: int
    write: int

    def __getitem__(self, idx: int) -> int:
        if idx == 0:
            return self.read
        elif idx == 1:
            return self.write
        else:
            raise IndexError("only index 0 or 1 are valid for Pipe:", idx)

    def __iter__(self) -> t.Iterator[int]:
        return iter([self.read, self.write])
