from childproc.backend import ProcessBackend, ProcessId, Source, default_backend
from childproc.command import Command
from childproc.exceptions import BackendSpawnFailed
from childproc.pipe import Pipe
from childproc.signal import SIG
from childproc.wait import ExitStatus
import errno
import os
import sys
import typing as t

EKO = os.path.join(os.path.dirname(os.path.abspath(__file__)), "eko.py")

def eko(*args: str) -> Command:
    "A Command running our test helper program in one of its modes"
    return Command(sys.executable).args(EKO, *args)

class RecordingBackend(ProcessBackend):
    """Wraps the real backend, recording pipes and closes, and failing on request

    `fail_pipe_at` makes the n-th create_pipe call (counting from 0) fail;
    `fail_spawn` makes spawn_process fail after all the pipes are created.

    """
    def __init__(self, fail_pipe_at: t.Optional[int]=None, fail_spawn: bool=False) -> None:
        self.real = default_backend()
        self.fail_pipe_at = fail_pipe_at
        self.fail_spawn = fail_spawn
        self.created: t.List[Pipe] = []
        self.closed: t.List[int] = []
        self.spawned: t.List[ProcessId] = []

    def created_fds(self) -> t.Set[int]:
        return {fd for pipe in self.created for fd in pipe}

    def create_pipe(self) -> Pipe:
        if self.fail_pipe_at == len(self.created):
            raise OSError(errno.EMFILE, os.strerror(errno.EMFILE))
        pipe = self.real.create_pipe()
        self.created.append(pipe)
        return pipe

    def spawn_process(self, program: str, argv: t.Sequence[str], env: t.Mapping[str, str],
                      cwd: t.Optional[str],
                      stdin: Source, stdout: Source, stderr: Source) -> ProcessId:
        if self.fail_spawn:
            raise BackendSpawnFailed("injected failure", program)
        pid = self.real.spawn_process(program, argv, env, cwd, stdin, stdout, stderr)
        self.spawned.append(pid)
        return pid

    def wait_exited(self, pid: ProcessId) -> None:
        self.real.wait_exited(pid)

    def wait_process(self, pid: ProcessId) -> ExitStatus:
        return self.real.wait_process(pid)

    def signal_process(self, pid: ProcessId, sig: SIG) -> None:
        self.real.signal_process(pid, sig)

    def release_process(self, pid: ProcessId) -> None:
        self.real.release_process(pid)

    def close_handle(self, fd: int) -> None:
        self.closed.append(fd)
        self.real.close_handle(fd)

def open_fds() -> int:
    "How many descriptors this process has open; POSIX only"
    directory = "/proc/self/fd" if os.path.isdir("/proc/self/fd") else "/dev/fd"
    return len(os.listdir(directory))
