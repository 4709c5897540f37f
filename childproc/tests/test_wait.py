from childproc.command import Command
from childproc.signal import SIG
from childproc.wait import CLD, CalledProcessError, ExitStatus
from unittest import TestCase, skipIf
import sys

class TestExitStatus(TestCase):
    @skipIf(sys.platform == "win32", "POSIX wait status encoding")
    def test_decode_exited(self) -> None:
        status = ExitStatus.make_from_wait_status(42, 3 << 8)
        self.assertEqual(status, ExitStatus(CLD.EXITED, 42, 3, None))
        self.assertFalse(status.success())

    @skipIf(sys.platform == "win32", "POSIX wait status encoding")
    def test_decode_signaled(self) -> None:
        status = ExitStatus.make_from_wait_status(42, 9)
        self.assertEqual(status.code, CLD.KILLED)
        self.assertEqual(status.killed_with(), SIG.KILL)
        self.assertIsNone(status.exit_code)

    @skipIf(sys.platform == "win32", "POSIX wait status encoding")
    def test_decode_dumped(self) -> None:
        status = ExitStatus.make_from_wait_status(42, 0x80 | 11)
        self.assertEqual(status.code, CLD.DUMPED)
        self.assertEqual(status.killed_with(), SIG.SEGV)

    def test_unknown_signal(self) -> None:
        status = ExitStatus.signaled(1, 63)
        self.assertEqual(status.killed_with(), 63)
        self.assertEqual(str(status), "signal: 63")

    def test_killed_with_on_exit(self) -> None:
        with self.assertRaises(Exception):
            ExitStatus.exited(1, 0).killed_with()

    def test_str(self) -> None:
        self.assertEqual(str(ExitStatus.exited(1, 2)), "exit status: 2")
        self.assertEqual(str(ExitStatus.signaled(1, SIG.TERM)), "signal: TERM")
        self.assertEqual(str(ExitStatus.signaled(1, SIG.ABRT, dumped=True)), "signal: ABRT (core dumped)")

    def test_check(self) -> None:
        ok = ExitStatus.exited(1, 0)
        self.assertIs(ok.check(), ok)
        cmd = Command("false")
        with self.assertRaises(CalledProcessError) as cm:
            ExitStatus.exited(1, 1).check(cmd)
        self.assertIs(cm.exception.command, cmd)
        self.assertIn("exit status: 1", str(cm.exception))
