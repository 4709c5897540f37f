"""The native primitives that process creation is built on

Everything platform-specific lives behind `ProcessBackend`; the rest of childproc calls
only these primitives, and never makes system calls itself.

There are two implementations, `childproc.backend.posix.PosixBackend`, built on
fork/exec/waitpid, and `childproc.backend.windows.WindowsBackend`, built on
CreateProcess and process handles. They satisfy identical pre- and post-conditions:

- Descriptors returned by `create_pipe` are usable by the parent with `os.read`,
  `os.write` and `os.close`, and are not inherited by children unless passed as a
  stream source to `spawn_process`.
- `spawn_process` either returns a `ProcessId` for a running child, or raises a
  `childproc.exceptions.SpawnError` and leaves no child behind. It never closes the
  descriptors passed to it; that's the caller's responsibility.
- `wait_exited` blocks until the child is dead without releasing its identity, so it's
  still safe to signal it; `wait_process` then reaps it and returns its status.
- After `release_process`, the identity must never be used again.

The backend for the running platform is chosen once, by `default_backend`.

"""
from __future__ import annotations
from dataclasses import dataclass
from childproc.environ import Environment
from childproc.pipe import Pipe
from childproc.signal import SIG
from childproc.stdio import Stdio
from childproc.wait import ExitStatus
import abc
import os
import sys
import typing as t

__all__ = [
    "ProcessId",
    "Source",
    "ProcessBackend",
    "default_backend",
]

@dataclass(frozen=True)
class ProcessId:
    """The identity of a child process.

    On POSIX this is just the pid; on Windows we also hold an open process handle, which
    keeps the pid from being reused until we close it.

    """
    pid: int
    handle: t.Optional[int] = None

    def __str__(self) -> str:
        return str(self.pid)

Source = t.Union[Stdio, int]
"What a standard stream of a new child is connected to: an inherited stream, the null device, or a pipe end"

class ProcessBackend:
    "The fixed set of native primitives which the Spawner and Child are built on."
    @abc.abstractmethod
    def create_pipe(self) -> Pipe:
        "Create a pipe; raise OSError on failure."
        pass

    @abc.abstractmethod
    def spawn_process(self, program: str, argv: t.Sequence[str], env: t.Mapping[str, str],
                      cwd: t.Optional[str],
                      stdin: Source, stdout: Source, stderr: Source) -> ProcessId:
        """Start `program` running with this argv, environment and working directory.

        `argv[0]` is passed through as the child's idea of its own name.

        """
        pass

    @abc.abstractmethod
    def wait_exited(self, pid: ProcessId) -> None:
        "Block until the child has exited, leaving it unreaped."
        pass

    @abc.abstractmethod
    def wait_process(self, pid: ProcessId) -> ExitStatus:
        "Reap the child, blocking until it has exited, and return how it ended."
        pass

    @abc.abstractmethod
    def signal_process(self, pid: ProcessId, sig: SIG) -> None:
        """Send this signal to the child.

        Raises `childproc.exceptions.ProcessAlreadyExited` if the child is dead but
        unreaped, and `childproc.exceptions.SignalError` on other delivery failures.

        """
        pass

    @abc.abstractmethod
    def release_process(self, pid: ProcessId) -> None:
        "Release any resources held for this reaped child."
        pass

    @abc.abstractmethod
    def close_handle(self, fd: int) -> None:
        "Close a descriptor returned by create_pipe."
        pass

    def resolve_program(self, program: t.Union[str, os.PathLike], env: Environment) -> str:
        """Find the executable to run for `program`.

        We search the PATH of the child's environment, falling back to our own PATH if the
        child has none.

        """
        return env.which(program, fallback_path=os.environ.get("PATH"))

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

_default_backend: t.Optional[ProcessBackend] = None

def default_backend() -> ProcessBackend:
    "The backend for the platform we're running on"
    global _default_backend
    if _default_backend is None:
        if sys.platform == "win32":
            from childproc.backend.windows import WindowsBackend
            _default_backend = WindowsBackend()
        else:
            from childproc.backend.posix import PosixBackend
            _default_backend = PosixBackend()
    return _default_backend
