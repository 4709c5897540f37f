from childproc.child import Lifecycle, Output
from childproc.command import Command
from childproc.exceptions import (
    ChildAlreadyConsumed,
    ProcessAlreadyExited,
    StreamClosed,
    StreamInUse,
)
from childproc.signal import SIG
from childproc.stdio import Stdio
from childproc.tests.utils import eko, open_fds
from childproc.wait import CalledProcessError, ExitStatus
from unittest import TestCase, mock, skipIf
import os
import sys
import tempfile
import threading
import typing as t

IS_WINDOWS = sys.platform == "win32"

class TestWaitWithOutput(TestCase):
    def test_interval(self) -> None:
        child = eko("interval").stdout(Stdio.PIPE).spawn()
        output = child.wait_with_output()
        self.assertEqual(output.stdout, "0\n1\n2\n3\n4\n")
        self.assertIsNone(output.stderr)
        self.assertTrue(output.status.success())
        self.assertEqual(output.status.pid, child.pid)

    def test_consumed_once(self) -> None:
        child = eko("hello").stdout(Stdio.PIPE).spawn()
        self.assertEqual(child.state, Lifecycle.RUNNING)
        child.wait_with_output()
        self.assertEqual(child.state, Lifecycle.CONSUMED)
        with self.assertRaises(ChildAlreadyConsumed) as cm:
            child.wait_with_output()
        self.assertEqual(str(cm.exception), "Child has been consumed")
        with self.assertRaises(ChildAlreadyConsumed):
            child.wait()

    def test_flood_both_streams(self) -> None:
        "A child filling both pipes at once doesn't deadlock us"
        size = 1 << 20
        output = eko("flood", str(size)).stdout(Stdio.PIPE).stderr(Stdio.PIPE).spawn().wait_with_output()
        self.assertTrue(output.status.success())
        self.assertEqual(len(output.stdout_bytes or b""), size)
        self.assertEqual(len(output.stderr_bytes or b""), size)

    def test_unread_stdin_while_flooding(self) -> None:
        "Pending stdin for a child which never reads it doesn't stop us collecting its output"
        size = 1 << 18
        child = eko("flood", str(size)).stdin(Stdio.PIPE).stdout(Stdio.PIPE).stderr(Stdio.NULL).spawn()
        stdin = child.stdin
        assert stdin is not None
        # more than any pipe holds, all still sitting in our buffer
        stdin.buffer_size = 1 << 21
        stdin.write(b"a" * (1 << 20))
        results: t.List[Output] = []
        thread = threading.Thread(target=lambda: results.append(child.wait_with_output()), daemon=True)
        thread.start()
        thread.join(30)
        self.assertFalse(thread.is_alive(), "wait_with_output blocked flushing stdin")
        self.assertTrue(results[0].status.success())
        self.assertEqual(len(results[0].stdout_bytes or b""), size)
        self.assertTrue(stdin.closed)

    def test_drain_threads_joined(self) -> None:
        child = eko("hello").stdout(Stdio.PIPE).stderr(Stdio.PIPE).spawn()
        child.wait_with_output()
        prefix = f"childproc-drain-{child.pid}-"
        self.assertEqual([thread for thread in threading.enumerate()
                          if thread.name.startswith(prefix)], [])

    def test_flushes_and_closes_stdin(self) -> None:
        child = eko("stdout").stdin(Stdio.PIPE).stdout(Stdio.PIPE).spawn()
        stdin = child.stdin
        assert stdin is not None
        stdin.write_line("never flushed")
        output = child.wait_with_output()
        self.assertEqual(output.stdout, "never flushed\n")
        self.assertTrue(stdin.closed)

    def test_stream_in_use(self) -> None:
        child = eko("interval", "3").stdout(Stdio.PIPE).spawn()
        stdout = child.stdout
        assert stdout is not None
        with self.assertRaises(StreamInUse):
            child.wait_with_output()
        # refusing didn't consume the child
        self.assertFalse(child.consumed)
        self.assertEqual(list(stdout.lines()), ["0", "1", "2"])
        self.assertTrue(child.wait().success())
        stdout.close()

    def test_taken_stream_not_collected(self) -> None:
        child = eko("hello").stdout(Stdio.PIPE).stderr(Stdio.PIPE).spawn()
        stdout = child.take_stdout()
        assert stdout is not None
        self.assertIsNone(child.take_stdout())
        output = child.wait_with_output()
        self.assertIsNone(output.stdout_bytes)
        self.assertEqual(output.stderr, "")
        with stdout:
            self.assertEqual(stdout.read_line(), "Hello, world!")

    def test_take_after_accessor(self) -> None:
        child = eko("hello").stdout(Stdio.PIPE).stderr(Stdio.PIPE).spawn()
        self.assertIsNotNone(child.stdout)
        stdout = child.take_stdout()
        assert stdout is not None
        # the Child no longer owns stdout, so it's free to collect the rest
        output = child.wait_with_output()
        self.assertIsNone(output.stdout_bytes)
        self.assertEqual(output.stderr, "")
        with stdout:
            self.assertEqual(stdout.read_all(), b"Hello, world!\n")

    def test_encoding(self) -> None:
        output = eko("raw", "e90a").encoding("latin-1").output()
        self.assertEqual(output.stdout, "é\n")
        self.assertEqual(output.stdout_bytes, b"\xe9\n")

    def test_check(self) -> None:
        cmd = eko("exit", "3")
        output = cmd.output()
        self.assertEqual(output.status.exit_code, 3)
        self.assertIs(output.command, cmd)
        with self.assertRaises(CalledProcessError) as cm:
            output.check()
        self.assertIs(cm.exception.command, cmd)
        self.assertEqual(str(cm.exception), f"{cmd} failed: exit status: 3")

class TestStreams(TestCase):
    def test_read_as_produced(self) -> None:
        child = eko("interval", "10").stdout(Stdio.PIPE).spawn()
        stdout = child.stdout
        assert stdout is not None
        for i in range(10):
            self.assertEqual(stdout.read_line(), str(i))
        self.assertIsNone(stdout.read_line())
        self.assertTrue(child.wait().success())

    def test_echo(self) -> None:
        cmd = eko("echo").stdin(Stdio.PIPE).stdout(Stdio.PIPE)
        for i in range(10):
            child = cmd.spawn()
            stdin, stdout = child.stdin, child.stdout
            assert stdin is not None and stdout is not None
            stdin.write_line(f"Hello {i}")
            stdin.flush()
            self.assertEqual(stdout.read_line(), f"Hello {i}")
            stdin.close()
            self.assertTrue(child.wait().success())
            stdout.close()

    def test_round_trip_in_order(self) -> None:
        "Lines written to a copying child come back in order, one at a time"
        child = eko("stdout").stdin(Stdio.PIPE).stdout(Stdio.PIPE).spawn()
        stdin, stdout = child.stdin, child.stdout
        assert stdin is not None and stdout is not None
        for i in range(1, 1001):
            stdin.write_line(f"line {i}")
            stdin.flush()
            self.assertEqual(stdout.read_line(), f"line {i}")
        stdin.close()
        self.assertIsNone(stdout.read_line())
        self.assertTrue(child.wait().success())
        stdout.close()

    def test_stderr(self) -> None:
        child = eko("error").stdin(Stdio.PIPE).stderr(Stdio.PIPE).spawn()
        stdin, stderr = child.stdin, child.stderr
        assert stdin is not None and stderr is not None
        self.assertIsNone(child.stdout)
        stdin.write_line("Hello")
        stdin.close()
        self.assertEqual(stderr.read_line(), "Hello")
        self.assertTrue(child.wait().success())
        stderr.close()

    def test_exact_bytes(self) -> None:
        "Rejoining the lines read reproduces exactly what the child wrote"
        for payload in [b"", b"\n", b"a\nbb\n\nccc\n", b"no newline at end"]:
            child = eko("raw", payload.hex()).stdout(Stdio.PIPE).spawn()
            stdout = child.stdout
            assert stdout is not None
            lines: t.List[bytes] = []
            while True:
                line = stdout.read_line_bytes()
                if line is None:
                    break
                lines.append(line)
            self.assertTrue(child.wait().success())
            stdout.close()
            self.assertEqual(b"\n".join(lines), payload[:-1] if payload.endswith(b"\n") else payload)

    def test_wait_leaves_streams(self) -> None:
        child = eko("interval", "3").stdout(Stdio.PIPE).spawn()
        self.assertTrue(child.wait().success())
        stdout = child.stdout
        assert stdout is not None
        self.assertEqual(list(stdout), ["0", "1", "2"])
        stdout.close()

    def test_closed_stdin(self) -> None:
        child = eko("echo").stdin(Stdio.PIPE).stdout(Stdio.NULL).spawn()
        stdin = child.stdin
        assert stdin is not None
        stdin.close()
        self.assertIsNone(child.stdin)
        with self.assertRaises(StreamClosed):
            stdin.write_line("too late")
        self.assertTrue(child.wait().success())

    def test_closed_stdout(self) -> None:
        child = eko("hello").stdout(Stdio.PIPE).stderr(Stdio.NULL).spawn()
        stdout = child.stdout
        assert stdout is not None
        stdout.close()
        self.assertIsNone(child.stdout)
        # the child may have failed to write to the closed pipe; either way it exits
        child.wait()

    def test_close_discards_unflushed_stdin(self) -> None:
        child = eko("stdout").stdin(Stdio.PIPE).stdout(Stdio.PIPE).spawn()
        stdout = child.take_stdout()
        stdin = child.stdin
        assert stdin is not None and stdout is not None
        stdin.write_line("flushed")
        stdin.flush()
        stdin.write_line("never sent")
        child.close()
        self.assertTrue(stdin.closed)
        self.assertIsNone(child.stdin)
        with stdout:
            self.assertEqual(stdout.read_all(), b"flushed\n")
        self.assertTrue(child.wait().success())

    def test_unpiped_accessors(self) -> None:
        child = eko("hello").stdin(Stdio.NULL).stdout(Stdio.NULL).stderr(Stdio.INHERIT).spawn()
        self.assertIsNone(child.stdin)
        self.assertIsNone(child.stdout)
        self.assertIsNone(child.stderr)
        self.assertTrue(child.wait().success())

class TestSignals(TestCase):
    def assert_killed(self, status: ExitStatus, sig: SIG) -> None:
        self.assertFalse(status.success())
        if IS_WINDOWS:
            self.assertEqual(status.exit_code, 1)
        else:
            self.assertEqual(status.killed_with(), sig)

    def test_kill(self) -> None:
        child = eko("sleep", "30").spawn()
        child.kill()
        self.assert_killed(child.wait(), SIG.KILL)

    def test_terminate(self) -> None:
        child = eko("sleep", "30").spawn()
        child.terminate()
        self.assert_killed(child.wait(), SIG.TERM)

    def test_kill_while_waiting(self) -> None:
        child = eko("sleep", "30").spawn()
        timer = threading.Timer(0.2, child.kill)
        timer.start()
        try:
            self.assert_killed(child.wait(), SIG.KILL)
        finally:
            timer.join()

    def test_kill_after_wait(self) -> None:
        child = eko("hello").stdout(Stdio.NULL).spawn()
        child.wait()
        with self.assertRaises(ProcessAlreadyExited):
            child.kill()

    @skipIf(not IS_WINDOWS and not hasattr(os, "waitid"), "needs a way to wait without reaping")
    def test_kill_exited_unreaped(self) -> None:
        child = eko("hello").stdout(Stdio.NULL).spawn()
        child.process.backend.wait_exited(child.process.ident)
        with self.assertRaises(ProcessAlreadyExited):
            child.kill()
        self.assertTrue(child.wait().success())

    def test_kill_drains(self) -> None:
        child = eko("sleep", "30").stdout(Stdio.PIPE).stderr(Stdio.PIPE).spawn()
        child.kill()
        output = child.wait_with_output()
        self.assertEqual(output.stdout, "")
        self.assert_killed(output.status, SIG.KILL)

class TestLaunch(TestCase):
    def test_output(self) -> None:
        output = eko("hello").output()
        self.assertEqual(output.stdout, "Hello, world!\n")
        self.assertEqual(output.stderr, "")
        self.assertTrue(output.status.success())

    def test_output_stdin_is_null(self) -> None:
        output = eko("echo").output()
        self.assertEqual(output.stdout, "")
        self.assertTrue(output.status.success())

    def test_status(self) -> None:
        self.assertTrue(eko("exit", "0").status().success())
        status = eko("exit", "3").status()
        self.assertEqual(status.exit_code, 3)
        with self.assertRaises(CalledProcessError):
            status.check()

    def test_env(self) -> None:
        with mock.patch.dict(os.environ, {"CHILDPROC_TEST": "inherited"}):
            self.assertEqual(eko("env", "CHILDPROC_TEST").output().stdout, "inherited\n")
            self.assertEqual(eko("env", "CHILDPROC_TEST").env(CHILDPROC_TEST="set").output().stdout,
                             "set\n")
            self.assertEqual(eko("env", "CHILDPROC_TEST").env_remove("CHILDPROC_TEST").output().stdout,
                             "<unset>\n")

    @skipIf(IS_WINDOWS, "Python on Windows needs SYSTEMROOT to start")
    def test_env_clear(self) -> None:
        cmd = eko("env", "CHILDPROC_TEST").env(CHILDPROC_TEST="dropped").env_clear()
        self.assertEqual(cmd.output().stdout, "<unset>\n")
        self.assertEqual(cmd.env(CHILDPROC_TEST="kept").output().stdout, "kept\n")
        self.assertEqual(eko("env", "PATH").env_clear().output().stdout, "<unset>\n")

    def test_cwd(self) -> None:
        with tempfile.TemporaryDirectory() as directory:
            output = eko("cwd").cwd(directory).output()
            self.assertEqual(os.path.realpath(output.check().stdout.rstrip("\n")),
                             os.path.realpath(directory))

    def test_context_manager_kills(self) -> None:
        with eko("sleep", "30").stdout(Stdio.PIPE).spawn() as child:
            stdout = child.stdout
            assert stdout is not None
        self.assertTrue(child.consumed)
        self.assertTrue(stdout.closed)
        with self.assertRaises(ProcessAlreadyExited):
            child.kill()

    def test_context_manager_after_wait(self) -> None:
        with eko("hello").stdout(Stdio.PIPE).spawn() as child:
            output = child.wait_with_output()
        self.assertEqual(output.stdout, "Hello, world!\n")
        self.assertTrue(child.consumed)

class TestRepeated(TestCase):
    @skipIf(IS_WINDOWS, "needs a POSIX shell")
    def test_shell_function(self) -> None:
        output = Command("sh").args("-c", "f() { echo username=a; echo password=b; }; f get").output()
        self.assertEqual(output.check().stdout, "username=a\npassword=b\n")

    @skipIf(IS_WINDOWS, "counts POSIX descriptors")
    def test_many_spawns_leak_nothing(self) -> None:
        cmd = eko("echo").stdin(Stdio.PIPE).stdout(Stdio.PIPE).stderr(Stdio.PIPE)
        def round_trip(i: int) -> None:
            child = cmd.spawn()
            stdin, stdout = child.stdin, child.stdout
            assert stdin is not None and stdout is not None
            stdin.write_line(f"Hello {i}")
            stdin.flush()
            self.assertEqual(stdout.read_line(), f"Hello {i}")
            stdin.close()
            self.assertTrue(child.wait().success())
            child.close()
        round_trip(0)
        before = open_fds()
        for i in range(1, 201):
            round_trip(i)
        self.assertEqual(open_fds(), before)

    @skipIf(IS_WINDOWS, "counts POSIX descriptors")
    def test_many_outputs_leak_nothing(self) -> None:
        cmd = eko("args")
        cmd.arg("0").output()
        before = open_fds()
        for i in range(1, 201):
            self.assertEqual(cmd.arg(str(i)).output().stdout, f"{i}\n")
        self.assertEqual(open_fds(), before)
