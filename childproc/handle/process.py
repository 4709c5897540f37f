from __future__ import annotations
from childproc.backend import ProcessBackend, ProcessId
from childproc.exceptions import ProcessAlreadyExited
from childproc.signal import SIG
from childproc.wait import ExitStatus
import logging
import threading
import typing as t
if t.TYPE_CHECKING:
    from childproc.command import Command

logger = logging.getLogger(__name__)

__all__ = [
    "ChildPid",
]

class ChildPid:
    """A process that is our child, which we can wait on and safely signal.

    Because a child's pid isn't reused until we reap it, we can signal it without any
    chance of hitting some other, unrelated process; as long as signaling and reaping
    never overlap. So waiting happens in two steps: we block until the child is dead
    without reaping it, and then reap it while holding the same lock that `kill` holds.
    Once reaped, `kill` refuses to touch the pid at all.

    """
    def __init__(self, backend: ProcessBackend, ident: ProcessId,
                 command: t.Optional[Command]=None) -> None:
        self.backend = backend
        self.ident = ident
        self.reaped = False
        self.death_state: t.Optional[ExitStatus] = None
        # the command this process exec'd; primarily useful for debugging
        self.command = command
        self._lock = threading.Lock()

    @property
    def pid(self) -> int:
        return self.ident.pid

    def wait(self) -> ExitStatus:
        "Block until the child exits, then reap it and release its identity"
        self.backend.wait_exited(self.ident)
        with self._lock:
            # even if reaping fails, we can no longer be sure the pid is ours
            self.reaped = True
            try:
                state = self.backend.wait_process(self.ident)
            finally:
                self.backend.release_process(self.ident)
            self.death_state = state
        logger.debug("pid %d exited: %s", self.pid, state)
        return state

    def kill(self, sig: SIG=SIG.KILL) -> None:
        "Send this signal to the child; throws ProcessAlreadyExited if it's already been reaped"
        with self._lock:
            if self.reaped:
                raise ProcessAlreadyExited(self.pid)
            self.backend.signal_process(self.ident, sig)

    def __repr__(self) -> str:
        name = type(self).__name__
        if self.command is None:
            return f"{name}({self.pid})"
        return f"{name}({self.pid}, {self.command})"
