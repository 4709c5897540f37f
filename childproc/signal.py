"""Signals which can be sent to, or can end, a child process.

Windows has no real signals; there, `SIG.KILL` and `SIG.TERM` both terminate the
process, and the others are rejected by the backend.

"""
from __future__ import annotations
import enum
import signal
import typing as t

__all__ = [
    "SIG",
]

class SIG(enum.IntEnum):
    "The portable subset of signals, numbered as the host numbers them"
    HUP = getattr(signal, "SIGHUP", 1)
    INT = signal.SIGINT
    QUIT = getattr(signal, "SIGQUIT", 3)
    ILL = signal.SIGILL
    ABRT = signal.SIGABRT
    FPE = signal.SIGFPE
    KILL = getattr(signal, "SIGKILL", 9)
    USR1 = getattr(signal, "SIGUSR1", 10)
    SEGV = signal.SIGSEGV
    USR2 = getattr(signal, "SIGUSR2", 12)
    PIPE = getattr(signal, "SIGPIPE", 13)
    ALRM = getattr(signal, "SIGALRM", 14)
    TERM = signal.SIGTERM

    @classmethod
    def lookup(cls, number: int) -> t.Union[SIG, int]:
        "Return the SIG for this number, or the bare number if it's outside our subset"
        try:
            return cls(number)
        except ValueError:
            return number

    def terminates(self) -> bool:
        "True for the signals every backend can deliver, all of which end the process"
        return self in (SIG.KILL, SIG.TERM)
