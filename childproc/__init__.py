"""Portable child processes with piped, line-oriented standard streams

childproc provides one API for spawning and managing child processes on both POSIX
systems and Windows.

## `Command`

A `Command` describes how to launch a process: the program, its argument list, updates
to its environment, its working directory, and what to do with each of its standard
streams. It's a builder; every method returns a new `Command`:

    child = Command("cat").arg("-u").stdin(Stdio.PIPE).stdout(Stdio.PIPE).spawn()

Each standard stream is governed by a `Stdio` policy: `Stdio.INHERIT` shares ours,
`Stdio.NULL` connects it to the null device, and `Stdio.PIPE` creates a pipe.

## `Child`

`Command.spawn` returns a `Child`. For each piped stream, the Child holds a
`BufferedWriter` (stdin) or `BufferedReader` (stdout, stderr), available through
`Child.stdin`, `Child.stdout` and `Child.stderr`:

    child.stdin.write_line("hello")
    child.stdin.flush()
    assert child.stdout.read_line() == "hello"
    child.stdin.close()
    child.wait().check()

The child is finished with exactly one terminal operation: `Child.wait`, or
`Child.wait_with_output`, which collects everything the child writes. A second terminal
operation raises `ChildAlreadyConsumed`. `Child.kill` sends a signal without waiting.

## Errors

Everything childproc raises on its own behalf derives from `ChildprocError`; see
`childproc.exceptions` for the taxonomy.

## Backends

All system calls go through a `childproc.backend.ProcessBackend`; one is implemented for
POSIX and one for Windows, and the right one is picked automatically.

"""
from childproc.child import Child, Lifecycle, Output
from childproc.command import Command
from childproc.exceptions import (
    BackendSpawnFailed,
    BackendWaitFailed,
    ChildAlreadyConsumed,
    ChildprocError,
    ExecutableNotFound,
    InvalidWorkingDirectory,
    PermissionDenied,
    PipeCreationFailed,
    ProcessAlreadyExited,
    SignalError,
    SpawnError,
    StreamClosed,
    StreamInUse,
    WaitError,
)
from childproc.io import BufferedReader, BufferedWriter
from childproc.signal import SIG
from childproc.spawn import spawn
from childproc.stdio import Stdio
from childproc.wait import CalledProcessError, ExitStatus

__all__ = [
    "Command",
    "Stdio",
    "spawn",
    "Child",
    "Lifecycle",
    "Output",
    "BufferedReader",
    "BufferedWriter",
    "ExitStatus",
    "CalledProcessError",
    "SIG",
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
