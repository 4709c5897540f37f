"""Fundamental FD ownership and lifecycle

A `FileDescriptor` is the single owner of one raw descriptor held by the parent: the
end of a pipe that wasn't handed to a child. It closes that descriptor at most once,
and every operation after the close fails with `StreamClosed`, rather than touching
a descriptor number which the OS may already have handed out again.

"""
from __future__ import annotations
from dataclasses import dataclass
from childproc.exceptions import StreamClosed
import logging
import os
import typing as t
if t.TYPE_CHECKING:
    from childproc.backend import ProcessBackend

logger = logging.getLogger(__name__)

__all__ = [
    "FileDescriptor",
]

@dataclass(eq=False)
class FileDescriptor:
    "An owned descriptor, closed through the backend that created it"
    __slots__ = ('backend', 'number', 'valid')
    backend: ProcessBackend
    number: int
    valid: bool

    @classmethod
    def own(cls, backend: ProcessBackend, number: int) -> FileDescriptor:
        "Take ownership of this raw descriptor"
        return cls(backend, number, True)

    def _validate(self) -> None:
        if not self.valid:
            raise StreamClosed("descriptor is already closed", self.number)

    def read(self, count: int) -> bytes:
        "Read at most `count` bytes, blocking until some are available; b'' means end of stream"
        self._validate()
        return os.read(self.number, count)

    def write(self, data: bytes) -> int:
        "Write some prefix of `data`, returning how much was written"
        self._validate()
        return os.write(self.number, data)

    def write_all(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = self.write(view)
            view = view[written:]

    def invalidate(self) -> bool:
        """Close this descriptor if it's still open

        Returns true if we closed it, false if it was already closed.

        """
        if not self.valid:
            return False
        self.valid = False
        logger.debug("closing fd %d", self.number)
        self.backend.close_handle(self.number)
        return True

    def close(self) -> None:
        """Close this descriptor, throwing if it's already closed

        manpage: close(2)
        """
        self._validate()
        self.invalidate()

    def fileno(self) -> int:
        self._validate()
        return self.number

    def __int__(self) -> int:
        return self.fileno()

    def __repr__(self) -> str:
        state = "" if self.valid else ", closed"
        return f"FileDescriptor({self.number}{state})"
