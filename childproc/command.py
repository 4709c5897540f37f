"Provides the Command class, a builder describing how to launch a child process."
from __future__ import annotations
from childproc.io import DEFAULT_ENCODING
from childproc.stdio import Stdio
import os
import shlex
import typing as t
if t.TYPE_CHECKING:
    from childproc.backend import ProcessBackend
    from childproc.child import Child, Output
    from childproc.wait import ExitStatus

__all__ = [
    "Command",
]

PathLike = t.Union[str, os.PathLike]
StdioPolicies = t.Tuple[Stdio, Stdio, Stdio]

T_command = t.TypeVar('T_command', bound="Command")
class Command:
    """A convenient builder-pattern representation of a process launch.

    Each builder method returns a new Command with one more setting; the Command it's
    called on is left unchanged. Nothing talks to the OS until `spawn`, so a bad path or
    a missing executable only shows up then. A Command can be spawned any number of
    times, each time producing an independent `childproc.Child`.

    Arguments are an explicit list and are never interpreted by a shell, unless you
    run a shell yourself:

        Command("sh").args("-c", "echo $HOME").stdout(Stdio.PIPE).output()

    """
    def __init__(self,
                 program: PathLike,
                 arguments: t.Optional[t.Sequence[PathLike]]=None,
                 env_updates: t.Mapping[str, t.Optional[PathLike]]={},
                 env_cleared: bool=False,
                 working_directory: t.Optional[PathLike]=None,
                 stdin_policy: t.Optional[Stdio]=None,
                 stdout_policy: t.Optional[Stdio]=None,
                 stderr_policy: t.Optional[Stdio]=None,
                 text_encoding: str=DEFAULT_ENCODING) -> None:
        self.program = program
        # by convention, argv[0] is the name of the program
        self.arguments: t.List[PathLike] = [os.fsdecode(program)] if arguments is None else list(arguments)
        self.env_updates: t.Dict[str, t.Optional[PathLike]] = dict(env_updates)
        self.env_cleared = env_cleared
        self.working_directory = working_directory
        self.stdin_policy = stdin_policy
        self.stdout_policy = stdout_policy
        self.stderr_policy = stderr_policy
        self.text_encoding = text_encoding

    def _replace(self: T_command, **changes: t.Any) -> T_command:
        fields: t.Dict[str, t.Any] = dict(
            program=self.program,
            arguments=self.arguments,
            env_updates=self.env_updates,
            env_cleared=self.env_cleared,
            working_directory=self.working_directory,
            stdin_policy=self.stdin_policy,
            stdout_policy=self.stdout_policy,
            stderr_policy=self.stderr_policy,
            text_encoding=self.text_encoding,
        )
        fields.update(changes)
        return type(self)(**fields)

    def arg(self: T_command, arg: PathLike) -> T_command:
        "Add one more argument to this Command."
        return self._replace(arguments=[*self.arguments, arg])

    def args(self: T_command, *args: PathLike) -> T_command:
        "Add more arguments to this Command."
        return self._replace(arguments=[*self.arguments, *args])

    def env(self: T_command, env_updates: t.Mapping[str, PathLike]={},
            **updates: PathLike) -> T_command:
        """Add more environment variable updates to this Command.

        There are two ways to pass arguments to this method (which can be used simultaneously):
        - you can pass a dictionary of environment updates,
        - or you can provide your environment updates as keyword arguments.
        Both are necessary, since there are many valid environment variable
        names which are not valid Python keyword argument names.

        Later updates to the same variable win.

        """
        return self._replace(env_updates={**self.env_updates, **env_updates, **updates})

    def env_remove(self: T_command, *names: str) -> T_command:
        "Remove these variables from the child's environment, even if we have them set."
        removals: t.Dict[str, t.Optional[PathLike]] = {name: None for name in names}
        return self._replace(env_updates={**self.env_updates, **removals})

    def env_clear(self: T_command) -> T_command:
        "Start the child from an empty environment, discarding any earlier updates."
        return self._replace(env_updates={}, env_cleared=True)

    def cwd(self: T_command, path: PathLike) -> T_command:
        "Run the child in this working directory."
        return self._replace(working_directory=path)

    def stdin(self: T_command, policy: Stdio) -> T_command:
        return self._replace(stdin_policy=_check_policy(policy))

    def stdout(self: T_command, policy: Stdio) -> T_command:
        return self._replace(stdout_policy=_check_policy(policy))

    def stderr(self: T_command, policy: Stdio) -> T_command:
        return self._replace(stderr_policy=_check_policy(policy))

    def encoding(self: T_command, name: str) -> T_command:
        "Decode and encode text on the child's streams with this codec."
        return self._replace(text_encoding=name)

    def policies(self, default: StdioPolicies=(Stdio.INHERIT, Stdio.INHERIT, Stdio.INHERIT)) -> StdioPolicies:
        "The Stdio policy of each slot, using `default` for slots that were never set"
        return (
            default[0] if self.stdin_policy is None else self.stdin_policy,
            default[1] if self.stdout_policy is None else self.stdout_policy,
            default[2] if self.stderr_policy is None else self.stderr_policy,
        )

    def spawn(self, backend: t.Optional[ProcessBackend]=None) -> Child:
        "Start a child process; unset standard streams are inherited."
        from childproc.spawn import spawn
        return spawn(self, backend=backend)

    def output(self, backend: t.Optional[ProcessBackend]=None) -> Output:
        """Run the child to completion, collecting its output.

        Unless set otherwise, stdout and stderr are piped and collected, and stdin is
        connected to the null device.

        """
        from childproc.spawn import spawn
        child = spawn(self, backend=backend, default=(Stdio.NULL, Stdio.PIPE, Stdio.PIPE))
        return child.wait_with_output()

    def status(self, backend: t.Optional[ProcessBackend]=None) -> ExitStatus:
        "Run the child to completion and return how it ended; unset streams are inherited."
        with self.spawn(backend) as child:
            return child.wait()

    def in_shell_form(self) -> str:
        "Render this Command as a string which could be passed to a shell."
        ret = ""
        if self.working_directory is not None:
            ret += "cd " + shlex.quote(os.fsdecode(self.working_directory)) + " && "
        if self.env_cleared:
            ret += "env -i "
        for key, value in self.env_updates.items():
            if value is not None:
                ret += key + "=" + shlex.quote(os.fsdecode(value)) + " "
        ret += shlex.quote(os.fsdecode(self.program))
        # skip first argument
        for arg in self.arguments[1:]:
            ret += " " + shlex.quote(os.fsdecode(arg))
        return ret

    def __str__(self) -> str:
        ret = "Command("
        for key, value in self.env_updates.items():
            if value is None:
                ret += f"-{key} "
            else:
                ret += f"{key}={os.fsdecode(value)} "
        ret += f"{os.fsdecode(self.program)},"
        for arg in self.arguments:
            ret += " " + os.fsdecode(arg)
        ret += ")"
        return ret

    def __repr__(self) -> str:
        return str(self)

def _check_policy(policy: Stdio) -> Stdio:
    if not isinstance(policy, Stdio):
        raise TypeError("expected a Stdio policy", policy)
    return policy


#### Tests ####
from unittest import TestCase

class TestCommand(TestCase):
    def test_builder_leaves_original(self) -> None:
        base = Command("cat")
        extended = base.arg("-u").stdout(Stdio.PIPE)
        self.assertEqual(base.arguments, ["cat"])
        self.assertIsNone(base.stdout_policy)
        self.assertEqual(extended.arguments, ["cat", "-u"])
        self.assertEqual(extended.stdout_policy, Stdio.PIPE)
