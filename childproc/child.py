"""A running child process and the parent's ends of its pipes

A `Child` is created by `childproc.spawn.spawn`. It owns the process identity and any
pipe ends until a terminal operation (`Child.wait` or `Child.wait_with_output`) runs.
Exactly one terminal operation ever runs on a Child; any later one raises
`childproc.exceptions.ChildAlreadyConsumed`.

The streams can be used freely, from the moment spawn returns, in any interleaving with
the child's own execution. Just remember that nothing written to stdin reaches the
child until it's flushed, and that a child which fills its stdout pipe will stop until
someone reads it.

"""
from __future__ import annotations
from dataclasses import dataclass
from childproc.exceptions import ChildAlreadyConsumed, ProcessAlreadyExited, StreamInUse
from childproc.handle.process import ChildPid
from childproc.io import DEFAULT_ENCODING, BufferedReader, BufferedWriter
from childproc.signal import SIG
from childproc.stdio import Fileno
from childproc.wait import ExitStatus
import contextlib
import enum
import errno
import logging
import outcome
import queue
import sys
import threading
import typing as t
if t.TYPE_CHECKING:
    from childproc.command import Command

__all__ = [
    "Lifecycle",
    "Output",
    "Child",
]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

class Lifecycle(enum.Enum):
    RUNNING = "running"
    CONSUMED = "consumed"

@dataclass(frozen=True)
class Output:
    """Everything a finished child wrote, along with how it ended.

    `stdout_bytes` and `stderr_bytes` are None for streams that weren't piped.

    """
    status: ExitStatus
    stdout_bytes: t.Optional[bytes]
    stderr_bytes: t.Optional[bytes]
    encoding: str = DEFAULT_ENCODING
    command: t.Optional[Command] = None

    def _decode(self, data: t.Optional[bytes]) -> t.Optional[str]:
        if data is None:
            return None
        return data.decode(self.encoding, "replace")

    @property
    def stdout(self) -> t.Optional[str]:
        return self._decode(self.stdout_bytes)

    @property
    def stderr(self) -> t.Optional[str]:
        return self._decode(self.stderr_bytes)

    def check(self) -> Output:
        "Throw CalledProcessError if the child didn't exit cleanly; otherwise return self"
        self.status.check(self.command)
        return self

def _drain(fileno: Fileno, reader: BufferedReader,
           results: queue.Queue[t.Tuple[Fileno, outcome.Outcome]]) -> None:
    results.put((fileno, outcome.capture(reader.read_all)))
    logger.debug("finished draining %s", fileno.name)

class Child:
    "A child process, as returned by `childproc.Command.spawn`"
    def __init__(self, pid: ChildPid,
                 stdin: t.Optional[BufferedWriter]=None,
                 stdout: t.Optional[BufferedReader]=None,
                 stderr: t.Optional[BufferedReader]=None,
                 encoding: str=DEFAULT_ENCODING) -> None:
        self.process = pid
        self.encoding = encoding
        self._stdin = stdin
        self._stdout = stdout
        self._stderr = stderr
        # readers we've handed out through the accessors, and so must not drain ourselves
        self._lent: t.Set[Fileno] = set()
        self._state = Lifecycle.RUNNING
        self._lock = threading.Lock()

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def command(self) -> t.Optional[Command]:
        return self.process.command

    @property
    def state(self) -> Lifecycle:
        return self._state

    @property
    def consumed(self) -> bool:
        return self._state is Lifecycle.CONSUMED

    #### Streams
    @property
    def stdin(self) -> t.Optional[BufferedWriter]:
        "The writer for the child's stdin; None unless it was piped and is still open"
        if self._stdin is None or self._stdin.closed:
            return None
        return self._stdin

    def _lend(self, fileno: Fileno, reader: t.Optional[BufferedReader]) -> t.Optional[BufferedReader]:
        if reader is None or reader.closed:
            return None
        self._lent.add(fileno)
        return reader

    @property
    def stdout(self) -> t.Optional[BufferedReader]:
        "The reader for the child's stdout; None unless it was piped and is still open"
        return self._lend(Fileno.STDOUT, self._stdout)

    @property
    def stderr(self) -> t.Optional[BufferedReader]:
        "The reader for the child's stderr; None unless it was piped and is still open"
        return self._lend(Fileno.STDERR, self._stderr)

    def take_stdin(self) -> t.Optional[BufferedWriter]:
        "Take ownership of the stdin writer; the Child forgets about it"
        stdin, self._stdin = self.stdin, None
        return stdin

    def take_stdout(self) -> t.Optional[BufferedReader]:
        "Take ownership of the stdout reader; wait_with_output will report no stdout"
        stdout = self._stdout if self._stdout is not None and not self._stdout.closed else None
        self._stdout = None
        self._lent.discard(Fileno.STDOUT)
        return stdout

    def take_stderr(self) -> t.Optional[BufferedReader]:
        "Take ownership of the stderr reader; wait_with_output will report no stderr"
        stderr = self._stderr if self._stderr is not None and not self._stderr.closed else None
        self._stderr = None
        self._lent.discard(Fileno.STDERR)
        return stderr

    def close(self) -> None:
        """Close every stream the Child still owns; streams already closed are skipped

        Bytes still buffered in the stdin writer are discarded, not flushed: the child
        may not be reading, and flushing to it could block forever. Close the writer
        itself first to deliver them.

        """
        for stream in (self._stdin, self._stdout, self._stderr):
            if stream is not None:
                stream.fd.invalidate()

    #### Terminal operations
    def _consume(self, draining: bool=False) -> None:
        with self._lock:
            if self._state is Lifecycle.CONSUMED:
                raise ChildAlreadyConsumed()
            if draining and self._lent:
                raise StreamInUse("can't collect output from streams already handed out",
                                  sorted(fileno.name for fileno in self._lent))
            self._state = Lifecycle.CONSUMED

    def wait(self) -> ExitStatus:
        """Block until the child exits, and return how it ended.

        The streams are left alone; anything still unread in the pipes can be read
        afterwards. Note that a child blocked reading stdin won't exit until stdin is
        closed.

        """
        self._consume()
        return self.process.wait()

    def _close_stdin(self) -> None:
        stdin, self._stdin = self._stdin, None
        if stdin is None or stdin.closed:
            return
        try:
            stdin.close()
        except BrokenPipeError:
            # the child exited, or closed its stdin, without reading everything we sent
            logger.debug("child %d stopped reading stdin before we closed it", self.pid)
        except OSError as e:
            # Windows reports a pipe with no reader as EINVAL
            if not (IS_WINDOWS and e.errno == errno.EINVAL):
                raise
            logger.debug("child %d stopped reading stdin before we closed it", self.pid)

    def wait_with_output(self) -> Output:
        """Close stdin, collect everything the child writes to stdout and stderr, and wait for it.

        The two streams are drained concurrently, each by its own thread, and the
        draining starts before we flush what's left of stdin; so a child which fills its
        output pipes without reading its input can't deadlock us. The threads are joined
        before we return.

        Raises StreamInUse, without consuming the Child, if a reader was already handed
        out by the `stdout` or `stderr` accessors.

        """
        self._consume(draining=True)
        results: queue.Queue[t.Tuple[Fileno, outcome.Outcome]] = queue.Queue()
        drains: t.List[threading.Thread] = []
        for fileno, reader in ((Fileno.STDOUT, self._stdout), (Fileno.STDERR, self._stderr)):
            if reader is None or reader.closed:
                continue
            thread = threading.Thread(target=_drain, args=(fileno, reader, results),
                                      name=f"childproc-drain-{self.pid}-{fileno.name.lower()}",
                                      daemon=True)
            thread.start()
            drains.append(thread)
        closed_stdin = outcome.capture(self._close_stdin)
        status = outcome.capture(self.process.wait)
        collected: t.Dict[Fileno, outcome.Outcome] = {}
        for _ in drains:
            fileno, result = results.get()
            collected[fileno] = result
        for thread in drains:
            thread.join()
        self.close()
        closed_stdin.unwrap()
        return Output(
            status.unwrap(),
            collected[Fileno.STDOUT].unwrap() if Fileno.STDOUT in collected else None,
            collected[Fileno.STDERR].unwrap() if Fileno.STDERR in collected else None,
            self.encoding,
            self.command,
        )

    def kill(self, sig: SIG=SIG.KILL) -> None:
        """Send a signal to this child, without waiting for it to exit.

        Throws ProcessAlreadyExited if it has already exited.

        """
        self.process.kill(sig)

    def terminate(self) -> None:
        "Politely ask the child to exit; on Windows, this is the same as kill"
        self.kill(SIG.TERM)

    def __enter__(self) -> Child:
        return self

    def __exit__(self, *args: t.Any) -> None:
        "Close our streams and, if no terminal operation has run, kill the child and reap it"
        self.close()
        if not self.consumed:
            with contextlib.suppress(ProcessAlreadyExited):
                self.kill()
            with contextlib.suppress(ChildAlreadyConsumed):
                self.wait()

    def __repr__(self) -> str:
        name = type(self).__name__
        return f"{name}({self.process}, {self._state.name.lower()})"
