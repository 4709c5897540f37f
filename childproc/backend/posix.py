"""ProcessBackend built on fork, exec and waitpid

The child reports any failure between fork and exec (a bad working directory, a missing
or non-executable program) back to us over a close-on-exec pipe: if exec succeeds, the
pipe is closed without anything being written, and we read EOF. That lets spawn_process
raise a precise SpawnError, rather than returning a child which immediately exits 127.

"""
from __future__ import annotations
from childproc.backend import ProcessBackend, ProcessId, Source
from childproc.exceptions import (
    BackendSpawnFailed,
    BackendWaitFailed,
    ExecutableNotFound,
    InvalidWorkingDirectory,
    PermissionDenied,
    ProcessAlreadyExited,
    SignalError,
    SpawnError,
)
from childproc.pipe import Pipe
from childproc.signal import SIG
from childproc.stdio import Fileno, Stdio
from childproc.wait import ExitStatus
import contextlib
import errno
import fcntl
import logging
import os
import signal
import typing as t

__all__ = [
    "PosixBackend",
]

logger = logging.getLogger(__name__)

# The stages at which a forked child can fail before exec
STAGE_DUP = "dup"
STAGE_CHDIR = "chdir"
STAGE_EXEC = "exec"

def _exec_child(program: bytes, argv: t.List[bytes], env: t.Dict[bytes, bytes],
                cwd: t.Optional[bytes], targets: t.List[t.Tuple[int, int]],
                err_write: int) -> t.NoReturn:
    "Runs in the forked child; set up the standard streams and exec, or report why we couldn't"
    stage = STAGE_DUP
    try:
        # Python ignores these, and ignored signals are inherited over exec
        for name in ("SIGPIPE", "SIGXFSZ"):
            sig = getattr(signal, name, None)
            if sig is not None:
                signal.signal(sig, signal.SIG_DFL)
        # move sources sitting in a standard slot out of the way before we dup over them
        moved: t.List[t.Tuple[int, int]] = []
        for source, target in targets:
            if source < len(Fileno) and source != target:
                source = fcntl.fcntl(source, fcntl.F_DUPFD_CLOEXEC, len(Fileno))
            moved.append((source, target))
        for source, target in moved:
            if source == target:
                os.set_inheritable(target, True)
            else:
                os.dup2(source, target)
        stage = STAGE_CHDIR
        if cwd is not None:
            os.chdir(cwd)
        stage = STAGE_EXEC
        os.execve(program, argv, env)
    except BaseException as e:
        report = f"{stage}:{getattr(e, 'errno', None) or 0}".encode()
        try:
            os.write(err_write, report)
        finally:
            os._exit(127)
    os._exit(127)

def _read_until_eof(fd: int) -> bytes:
    chunks: t.List[bytes] = []
    while True:
        data = os.read(fd, 256)
        if not data:
            return b"".join(chunks)
        chunks.append(data)

def _decode_report(report: bytes, program: str, cwd: t.Optional[str]) -> t.Tuple[SpawnError, OSError]:
    stage, _, number = report.decode("ascii", "replace").partition(":")
    try:
        err = int(number)
    except ValueError:
        err = 0
    cause = OSError(err, os.strerror(err) if err else "unknown error in child before exec")
    if stage == STAGE_CHDIR and cwd is not None:
        return InvalidWorkingDirectory(cwd), cause
    if stage == STAGE_EXEC:
        if err in (errno.ENOENT, errno.ENOTDIR):
            return ExecutableNotFound(program), cause
        elif err in (errno.EACCES, errno.EPERM):
            return PermissionDenied(program), cause
    return BackendSpawnFailed(f"child failed before exec, during {stage}", program), cause

class PosixBackend(ProcessBackend):
    "fork/exec/waitpid; used on Linux, macOS, and the BSDs"
    def create_pipe(self) -> Pipe:
        # os.pipe returns non-inheritable (O_CLOEXEC) descriptors
        read, write = os.pipe()
        logger.debug("created pipe, write %d -> read %d", write, read)
        return Pipe(read, write)

    def spawn_process(self, program: str, argv: t.Sequence[str], env: t.Mapping[str, str],
                      cwd: t.Optional[str],
                      stdin: Source, stdout: Source, stderr: Source) -> ProcessId:
        # encode everything before forking, so the child does as little as possible
        program_b = os.fsencode(program)
        argv_b = [os.fsencode(arg) for arg in argv]
        env_b = {os.fsencode(key): os.fsencode(value) for key, value in env.items()}
        cwd_b = None if cwd is None else os.fsencode(cwd)
        with contextlib.ExitStack() as stack:
            targets: t.List[t.Tuple[int, int]] = []
            null_fd: t.Optional[int] = None
            for fileno, source in zip(Fileno, (stdin, stdout, stderr)):
                if source is Stdio.INHERIT:
                    continue
                elif source is Stdio.NULL:
                    if null_fd is None:
                        try:
                            null_fd = os.open(os.devnull, os.O_RDWR)
                        except OSError as e:
                            raise BackendSpawnFailed("couldn't open", os.devnull) from e
                        stack.callback(os.close, null_fd)
                    targets.append((null_fd, fileno))
                elif isinstance(source, Stdio):
                    raise ValueError("a pipe must be created before it can be passed as a stream source",
                                     fileno, source)
                else:
                    targets.append((source, fileno))
            err_read, err_write = os.pipe()
            stack.callback(os.close, err_read)
            try:
                pid = os.fork()
            except OSError as e:
                os.close(err_write)
                raise BackendSpawnFailed("fork failed", program) from e
            if pid == 0:
                _exec_child(program_b, argv_b, env_b, cwd_b, targets, err_write)
            os.close(err_write)
            report = _read_until_eof(err_read)
        if report:
            # the child has already exited with 127; reap it so it doesn't linger as a zombie
            os.waitpid(pid, 0)
            error, cause = _decode_report(report, program, cwd)
            raise error from cause
        logger.debug("forked and exec'd %s as pid %d", program, pid)
        return ProcessId(pid)

    def wait_exited(self, pid: ProcessId) -> None:
        if not hasattr(os, "waitid"):
            # without waitid we can't wait without reaping; wait_process will do the blocking
            return
        try:
            os.waitid(os.P_PID, pid.pid, os.WEXITED|os.WNOWAIT)
        except ChildProcessError as e:
            raise BackendWaitFailed("couldn't wait for pid", pid.pid) from e

    def wait_process(self, pid: ProcessId) -> ExitStatus:
        try:
            _, status = os.waitpid(pid.pid, 0)
        except ChildProcessError as e:
            raise BackendWaitFailed("couldn't reap pid", pid.pid) from e
        return ExitStatus.make_from_wait_status(pid.pid, status)

    def signal_process(self, pid: ProcessId, sig: SIG) -> None:
        if hasattr(os, "waitid"):
            # a dead but unreaped child still accepts signals; report it as exited instead
            try:
                dead = os.waitid(os.P_PID, pid.pid, os.WEXITED|os.WNOHANG|os.WNOWAIT)
            except ChildProcessError as e:
                raise SignalError("pid is not our child", pid.pid) from e
            if dead is not None:
                raise ProcessAlreadyExited(pid.pid)
        try:
            os.kill(pid.pid, sig)
        except ProcessLookupError as e:
            raise ProcessAlreadyExited(pid.pid) from e
        except OSError as e:
            raise SignalError("couldn't send", sig, "to pid", pid.pid) from e
        logger.debug("sent %s to pid %d", sig.name, pid.pid)

    def release_process(self, pid: ProcessId) -> None:
        # waitpid already released the pid
        pass

    def close_handle(self, fd: int) -> None:
        os.close(fd)
