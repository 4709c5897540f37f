"""Turning a Command into a running Child

The Spawner is the only place where pipe ends change hands. For every slot configured
as `Stdio.PIPE`, it creates one pipe, passes one end to the child, and keeps the other.
Once the child is running, the ends the child got are closed in the parent; otherwise
we'd hold a spurious extra writer on the child's stdout pipe, say, and would never see
end of stream on it.

If anything fails, every pipe end created so far is closed before the error propagates.

"""
from __future__ import annotations
from childproc.backend import ProcessBackend, Source, default_backend
from childproc.child import Child
from childproc.command import Command, StdioPolicies
from childproc.environ import Environment
from childproc.exceptions import PipeCreationFailed
from childproc.handle.fd import FileDescriptor
from childproc.handle.process import ChildPid
from childproc.io import BufferedReader, BufferedWriter
from childproc.pipe import Pipe
from childproc.stdio import Fileno, Stdio
import contextlib
import logging
import os
import typing as t

__all__ = [
    "spawn",
]

logger = logging.getLogger(__name__)

def _create_pipe(backend: ProcessBackend, fileno: Fileno) -> Pipe:
    try:
        return backend.create_pipe()
    except OSError as e:
        raise PipeCreationFailed("couldn't create a pipe for", fileno.name) from e

def spawn(command: Command, backend: t.Optional[ProcessBackend]=None,
          default: StdioPolicies=(Stdio.INHERIT, Stdio.INHERIT, Stdio.INHERIT)) -> Child:
    """Start a child process as described by `command`.

    `default` gives the policy for any standard stream the Command didn't set.
    Raises a `childproc.exceptions.SpawnError` if the child couldn't be started.

    """
    if backend is None:
        backend = default_backend()
    env = Environment.make_from_environ().updated(command.env_updates, clear=command.env_cleared)
    program = backend.resolve_program(command.program, env)
    argv = [os.fsdecode(arg) for arg in command.arguments]
    cwd = None if command.working_directory is None else os.fsdecode(command.working_directory)
    policies = command.policies(default)
    with contextlib.ExitStack() as parent_ends:
        # retained ends are closed on failure; the child's ends are closed unconditionally
        with contextlib.ExitStack() as child_ends:
            sources: t.List[Source] = []
            retained: t.Dict[Fileno, FileDescriptor] = {}
            for fileno, policy in zip(Fileno, policies):
                if policy is not Stdio.PIPE:
                    sources.append(policy)
                    continue
                pipe = _create_pipe(backend, fileno)
                if fileno.child_reads():
                    ours, theirs = pipe.write, pipe.read
                else:
                    ours, theirs = pipe.read, pipe.write
                retained[fileno] = FileDescriptor.own(backend, ours)
                parent_ends.callback(retained[fileno].invalidate)
                child_ends.callback(backend.close_handle, theirs)
                sources.append(theirs)
            ident = backend.spawn_process(program, argv, env.as_dict(), cwd, *sources)
        # the child is running; from here on the Child owns the retained ends
        parent_ends.pop_all()
    logger.debug("spawned %s as pid %d", command, ident.pid)
    encoding = command.text_encoding
    stdin = retained.get(Fileno.STDIN)
    stdout = retained.get(Fileno.STDOUT)
    stderr = retained.get(Fileno.STDERR)
    return Child(
        ChildPid(backend, ident, command),
        stdin=None if stdin is None else BufferedWriter(stdin, encoding),
        stdout=None if stdout is None else BufferedReader(stdout, encoding),
        stderr=None if stderr is None else BufferedReader(stderr, encoding),
        encoding=encoding,
    )
