"How a child process ended"
from __future__ import annotations
import typing as t
from dataclasses import dataclass
from childproc.signal import SIG
import enum
import os
if t.TYPE_CHECKING:
    from childproc.command import Command

__all__ = [
    "CLD",
    "ExitStatus",
    "CalledProcessError",
]

class CLD(enum.Enum):
    EXITED = "exited" # child called exit(2), or returned from main
    KILLED = "killed" # child killed by signal
    DUMPED = "dumped" # child killed by signal, and dumped core

class CalledProcessError(Exception):
    "Thrown when a process exits uncleanly; like `subprocess.CalledProcessError`"
    status: ExitStatus
    "Status of the child at exit"
    command: t.Optional[Command]
    "Optionally attached to CalledProcessError as useful information for debugging"

    def __init__(self, status: ExitStatus, command: t.Optional[Command]=None) -> None:
        super().__init__(status, command)
        self.status = status
        self.command = command

    def __str__(self) -> str:
        if self.command is None:
            return f"child process failed: {self.status}"
        return f"{self.command} failed: {self.status}"

@dataclass(frozen=True)
class ExitStatus:
    code: CLD
    pid: int
    exit_code: t.Optional[int]
    sig: t.Optional[t.Union[SIG, int]]

    @staticmethod
    def exited(pid: int, exit_code: int) -> ExitStatus:
        return ExitStatus(CLD.EXITED, pid, exit_code, None)

    @staticmethod
    def signaled(pid: int, sig: int, dumped: bool=False) -> ExitStatus:
        return ExitStatus(CLD.DUMPED if dumped else CLD.KILLED, pid, None, SIG.lookup(sig))

    @staticmethod
    def make_from_wait_status(pid: int, status: int) -> ExitStatus:
        "Decode the status word returned by waitpid; POSIX only"
        if os.WIFEXITED(status):
            return ExitStatus.exited(pid, os.WEXITSTATUS(status))
        elif os.WIFSIGNALED(status):
            return ExitStatus.signaled(pid, os.WTERMSIG(status), dumped=os.WCOREDUMP(status))
        else:
            # we never wait with WUNTRACED, so stopped children aren't reported
            raise ValueError("wait status doesn't describe a dead child", pid, status)

    def success(self) -> bool:
        "True if the child exited normally with status 0"
        return self.code is CLD.EXITED and self.exit_code == 0

    def check(self, command: t.Optional[Command]=None) -> ExitStatus:
        "Throw CalledProcessError if the child didn't exit cleanly; otherwise return self"
        if self.success():
            return self
        else:
            raise CalledProcessError(self, command)

    def killed_with(self) -> t.Union[SIG, int]:
        """What signal was the child killed with?

        Throws if the child was not killed with a signal.

        """
        if self.sig is None:
            raise Exception("Child wasn't killed with a signal", self)
        return self.sig

    def __str__(self) -> str:
        if self.code is CLD.EXITED:
            return f"exit status: {self.exit_code}"
        sig = self.sig.name if isinstance(self.sig, SIG) else self.sig
        if self.code is CLD.DUMPED:
            return f"signal: {sig} (core dumped)"
        return f"signal: {sig}"


#### Tests ####
from unittest import TestCase

class TestExitStatus(TestCase):
    def test_success(self) -> None:
        self.assertTrue(ExitStatus.exited(1, 0).success())
        self.assertFalse(ExitStatus.exited(1, 3).success())
        self.assertFalse(ExitStatus.signaled(1, SIG.KILL).success())
