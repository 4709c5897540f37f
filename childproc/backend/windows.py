"""ProcessBackend built on CreateProcess and process handles

Pipes are created with CreatePipe and immediately wrapped as C runtime descriptors,
so that the rest of childproc can treat them exactly like POSIX descriptors. When a
pipe end is passed to a child, we duplicate its handle into an inheritable copy, and
restrict inheritance to just those copies with PROC_THREAD_ATTRIBUTE_HANDLE_LIST.

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
)
from childproc.pipe import Pipe
from childproc.signal import SIG
from childproc.stdio import Fileno, Stdio
from childproc.wait import ExitStatus
import _winapi # type: ignore
import contextlib
import logging
import msvcrt
import os
import subprocess
import typing as t

__all__ = [
    "WindowsBackend",
]

logger = logging.getLogger(__name__)

ERROR_FILE_NOT_FOUND = 2
ERROR_PATH_NOT_FOUND = 3
ERROR_ACCESS_DENIED = 5
ERROR_DIRECTORY = 267

STD_HANDLES = {
    Fileno.STDIN: _winapi.STD_INPUT_HANDLE,
    Fileno.STDOUT: _winapi.STD_OUTPUT_HANDLE,
    Fileno.STDERR: _winapi.STD_ERROR_HANDLE,
}

def _inheritable_copy(handle: int) -> int:
    current = _winapi.GetCurrentProcess()
    return _winapi.DuplicateHandle(current, handle, current, 0, 1, _winapi.DUPLICATE_SAME_ACCESS)

class WindowsBackend(ProcessBackend):
    "CreateProcess/WaitForSingleObject/TerminateProcess"
    def create_pipe(self) -> Pipe:
        read_handle, write_handle = _winapi.CreatePipe(None, 0)
        pipe = Pipe(msvcrt.open_osfhandle(read_handle, 0), msvcrt.open_osfhandle(write_handle, 0))
        logger.debug("created pipe, write %d -> read %d", pipe.write, pipe.read)
        return pipe

    def spawn_process(self, program: str, argv: t.Sequence[str], env: t.Mapping[str, str],
                      cwd: t.Optional[str],
                      stdin: Source, stdout: Source, stderr: Source) -> ProcessId:
        if cwd is not None and not os.path.isdir(cwd):
            raise InvalidWorkingDirectory(cwd)
        with contextlib.ExitStack() as stack:
            handles: t.Dict[Fileno, int] = {}
            null_fd: t.Optional[int] = None
            for fileno, source in zip(Fileno, (stdin, stdout, stderr)):
                if source is Stdio.INHERIT:
                    handle = _winapi.GetStdHandle(STD_HANDLES[fileno])
                    if not handle:
                        # we have no such stream to share, so the child gets none either
                        handles[fileno] = 0
                        continue
                elif source is Stdio.NULL:
                    if null_fd is None:
                        try:
                            null_fd = os.open(os.devnull, os.O_RDWR)
                        except OSError as e:
                            raise BackendSpawnFailed("couldn't open", os.devnull) from e
                        stack.callback(os.close, null_fd)
                    handle = msvcrt.get_osfhandle(null_fd)
                elif isinstance(source, Stdio):
                    raise ValueError("a pipe must be created before it can be passed as a stream source",
                                     fileno, source)
                else:
                    handle = msvcrt.get_osfhandle(source)
                copy = _inheritable_copy(handle)
                stack.callback(_winapi.CloseHandle, copy)
                handles[fileno] = copy
            inherited = sorted(set(handle for handle in handles.values() if handle))
            startupinfo = subprocess.STARTUPINFO(
                dwFlags=subprocess.STARTF_USESTDHANDLES,
                hStdInput=handles[Fileno.STDIN],
                hStdOutput=handles[Fileno.STDOUT],
                hStdError=handles[Fileno.STDERR],
                lpAttributeList={"handle_list": inherited},
            )
            try:
                process_handle, thread_handle, pid, _ = _winapi.CreateProcess(
                    program, subprocess.list2cmdline(argv), None, None, bool(inherited),
                    _winapi.CREATE_UNICODE_ENVIRONMENT, dict(env), cwd, startupinfo)
            except OSError as e:
                winerror = getattr(e, "winerror", None)
                if winerror in (ERROR_FILE_NOT_FOUND, ERROR_PATH_NOT_FOUND):
                    raise ExecutableNotFound(program) from e
                elif winerror == ERROR_ACCESS_DENIED:
                    raise PermissionDenied(program) from e
                elif winerror == ERROR_DIRECTORY and cwd is not None:
                    raise InvalidWorkingDirectory(cwd) from e
                raise BackendSpawnFailed("CreateProcess failed", program) from e
            _winapi.CloseHandle(thread_handle)
        logger.debug("created process %s as pid %d", program, pid)
        return ProcessId(pid, int(process_handle))

    def _exit_code(self, pid: ProcessId) -> int:
        return _winapi.GetExitCodeProcess(pid.handle)

    def wait_exited(self, pid: ProcessId) -> None:
        result = _winapi.WaitForSingleObject(pid.handle, _winapi.INFINITE)
        if result != _winapi.WAIT_OBJECT_0:
            raise BackendWaitFailed("WaitForSingleObject failed for pid", pid.pid, result)

    def wait_process(self, pid: ProcessId) -> ExitStatus:
        self.wait_exited(pid)
        try:
            return ExitStatus.exited(pid.pid, self._exit_code(pid))
        except OSError as e:
            raise BackendWaitFailed("couldn't get exit code of pid", pid.pid) from e

    def signal_process(self, pid: ProcessId, sig: SIG) -> None:
        if not sig.terminates():
            raise SignalError("only SIG.KILL and SIG.TERM can be delivered on Windows", sig)
        if self._exit_code(pid) != _winapi.STILL_ACTIVE:
            raise ProcessAlreadyExited(pid.pid)
        try:
            _winapi.TerminateProcess(pid.handle, 1)
        except PermissionError as e:
            # also what we get if it exited between the check and the terminate
            if self._exit_code(pid) != _winapi.STILL_ACTIVE:
                raise ProcessAlreadyExited(pid.pid) from e
            raise SignalError("couldn't terminate pid", pid.pid) from e
        logger.debug("terminated pid %d", pid.pid)

    def release_process(self, pid: ProcessId) -> None:
        if pid.handle is not None:
            _winapi.CloseHandle(pid.handle)

    def close_handle(self, fd: int) -> None:
        os.close(fd)
