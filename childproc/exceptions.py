"""Every error childproc raises on its own behalf.

OS errors which aren't part of this taxonomy, such as `BrokenPipeError` when
writing to a child which has already exited, propagate unchanged.

"""
from __future__ import annotations
import os
import typing as t

__all__ = [
    "ChildprocError",
    "SpawnError",
    "ExecutableNotFound",
    "PermissionDenied",
    "InvalidWorkingDirectory",
    "PipeCreationFailed",
    "BackendSpawnFailed",
    "WaitError",
    "BackendWaitFailed",
    "ChildAlreadyConsumed",
    "StreamInUse",
    "StreamClosed",
    "SignalError",
    "ProcessAlreadyExited",
]

class ChildprocError(Exception):
    "Base class of the childproc error taxonomy"
    pass

#### Spawning
class SpawnError(ChildprocError):
    """We couldn't start the child process.

    By the time this is raised, every pipe end created for the spawn has been closed.

    """
    pass

class ExecutableNotFound(SpawnError):
    "No executable with this name can be found, either on PATH or at the literal path"
    def __init__(self, name: t.Union[str, os.PathLike]) -> None:
        super().__init__(name)
        self.name = name

class PermissionDenied(SpawnError):
    "The executable exists, but we aren't allowed to execute it"
    def __init__(self, path: t.Union[str, os.PathLike]) -> None:
        super().__init__(path)
        self.path = path

class InvalidWorkingDirectory(SpawnError):
    "The requested working directory doesn't exist or can't be entered"
    def __init__(self, cwd: t.Union[str, os.PathLike]) -> None:
        super().__init__(cwd)
        self.cwd = cwd

class PipeCreationFailed(SpawnError):
    "The OS refused to create a pipe for one of the standard streams"
    pass

class BackendSpawnFailed(SpawnError):
    "Process creation failed for some reason other than the ones above"
    pass

#### Waiting
class WaitError(ChildprocError):
    "A terminal operation on a Child failed"
    pass

class BackendWaitFailed(WaitError):
    "The OS reported an error while waiting for the child to exit"
    pass

class ChildAlreadyConsumed(WaitError):
    "A terminal operation already ran on this Child; its process has been reaped"
    def __init__(self, message: str="Child has been consumed") -> None:
        super().__init__(message)

class StreamInUse(WaitError):
    """wait_with_output was called after the caller took a reader from the Child.

    Draining a stream which the caller may also be reading is unsupported, so we refuse
    before consuming the Child.

    """
    pass

#### Streams
class StreamClosed(ChildprocError):
    "An operation was attempted on a stream whose descriptor has been released"
    pass

#### Signals
class SignalError(ChildprocError):
    "A signal couldn't be delivered to the child"
    pass

class ProcessAlreadyExited(SignalError):
    "The child has already exited, so there's nothing to signal"
    pass
