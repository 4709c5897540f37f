"""Buffered, line-oriented streams over the parent's ends of a child's pipes

All operations block the calling thread. Each stream assumes a single reader or a single
writer; sharing one between threads needs external locking.

"""
from __future__ import annotations
from childproc.exceptions import StreamClosed
from childproc.handle.fd import FileDescriptor
import logging
import typing as t

__all__ = [
    "DEFAULT_BUFFER_SIZE",
    "DEFAULT_ENCODING",
    "BufferedReader",
    "BufferedWriter",
]

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 8192
DEFAULT_ENCODING = "utf-8"

class BufferedReader:
    """A buffer for reading records from a child's output.

    When reading data from a pipe, data is not delivered to us from the kernel in
    nicely-separated records. We need to rebuffer the data so that it can be split into
    lines. That's what this class does.

    Once we've seen end of stream, we remember it; a reader never "resumes" after EOF.

    """
    def __init__(self, fd: FileDescriptor, encoding: str=DEFAULT_ENCODING,
                 buffer_size: int=DEFAULT_BUFFER_SIZE, errors: str="replace") -> None:
        self.fd = fd
        self.encoding = encoding
        self.errors = errors
        self.buffer_size = buffer_size
        self.buf = b""
        self.eof = False

    @property
    def closed(self) -> bool:
        return not self.fd.valid

    def _validate(self) -> None:
        if self.closed:
            raise StreamClosed("can't read from a closed stream", self.fd.number)

    def _read(self) -> bytes:
        "Read some bytes; raise EOFError on EOF."
        data = self.fd.read(self.buffer_size)
        if len(data) == 0:
            self.eof = True
            raise EOFError
        else:
            return data

    def read_until_delimiter(self, delim: bytes) -> t.Optional[bytes]:
        """Read and return all bytes until the specified delimiter, stripping the delimiter.

        If the stream ends before another delimiter, we return whatever unterminated data
        is left, or None if there's nothing left at all.

        """
        self._validate()
        start = 0
        while True:
            i = self.buf.find(delim, start)
            if i >= 0:
                section = self.buf[:i]
                # skip the delimiter
                self.buf = self.buf[i+len(delim):]
                return section
            if self.eof:
                if self.buf:
                    section, self.buf = self.buf, b""
                    return section
                return None
            # buf contains no copies of "delim", gotta read some more data
            start = max(len(self.buf) - len(delim) + 1, 0)
            try:
                self.buf += self._read()
            except EOFError:
                pass

    def read_line_bytes(self) -> t.Optional[bytes]:
        "Read and return a line, stripping the newline (and a carriage return before it); None at EOF"
        line = self.read_until_delimiter(b"\n")
        if line is not None and line.endswith(b"\r"):
            line = line[:-1]
        return line

    def read_line(self) -> t.Optional[str]:
        "Read and return a decoded line, stripping the line terminator; None at EOF"
        line = self.read_line_bytes()
        if line is None:
            return None
        return line.decode(self.encoding, self.errors)

    def lines(self) -> t.Iterator[str]:
        """Lazily iterate over the remaining lines, until end of stream.

        The iterator is single-pass: once it has hit end of stream it's exhausted, and so
        is every later call to `lines`.

        """
        while True:
            line = self.read_line()
            if line is None:
                return
            yield line

    def __iter__(self) -> t.Iterator[str]:
        return self.lines()

    def read_all(self) -> bytes:
        "Read everything up to end of stream, including anything already buffered"
        self._validate()
        chunks = [self.buf]
        self.buf = b""
        while not self.eof:
            try:
                chunks.append(self._read())
            except EOFError:
                pass
        return b"".join(chunks)

    def read_text(self) -> str:
        return self.read_all().decode(self.encoding, self.errors)

    def fileno(self) -> int:
        return self.fd.fileno()

    def close(self) -> None:
        "Release the descriptor; throws StreamClosed if it's already been released"
        self._validate()
        self.fd.invalidate()

    def __enter__(self) -> BufferedReader:
        return self

    def __exit__(self, *args: t.Any) -> None:
        self.fd.invalidate()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.fd})"

class BufferedWriter:
    """A buffer for writing to a child's input.

    Nothing written reaches the child until the buffer fills up, or until `flush` or
    `close` is called; a child waiting for a line will wait forever on a line which is
    still sitting in our buffer.

    """
    def __init__(self, fd: FileDescriptor, encoding: str=DEFAULT_ENCODING,
                 buffer_size: int=DEFAULT_BUFFER_SIZE) -> None:
        self.fd = fd
        self.encoding = encoding
        self.buffer_size = buffer_size
        self.buf = bytearray()

    @property
    def closed(self) -> bool:
        return not self.fd.valid

    @property
    def pending(self) -> int:
        "How many bytes are buffered and not yet sent to the child"
        return len(self.buf)

    def _validate(self) -> None:
        if self.closed:
            raise StreamClosed("can't write to a closed stream", self.fd.number)

    def write(self, data: t.Union[bytes, str]) -> None:
        "Append raw bytes, or text encoded with our encoding"
        self._validate()
        if isinstance(data, str):
            data = data.encode(self.encoding)
        self.buf += data
        if len(self.buf) >= self.buffer_size:
            self.flush()

    def write_line(self, line: t.Union[bytes, str]="") -> None:
        "Append a line, adding the newline"
        if isinstance(line, str):
            self.write(line + "\n")
        else:
            self.write(line + b"\n")

    def flush(self) -> None:
        "Push all buffered bytes to the pipe; once this returns, the child can read them"
        self._validate()
        if self.buf:
            data, self.buf = bytes(self.buf), bytearray()
            self.fd.write_all(data)

    def close(self) -> None:
        """Flush, then release the descriptor, so the child sees end of stream.

        The descriptor is released even if the final flush fails, for example because the
        child has already exited.

        """
        self._validate()
        try:
            self.flush()
        finally:
            self.fd.invalidate()

    def fileno(self) -> int:
        return self.fd.fileno()

    def __enter__(self) -> BufferedWriter:
        return self

    def __exit__(self, *args: t.Any) -> None:
        if not self.closed:
            self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.fd})"
