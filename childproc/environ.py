"""Functions and classes relating to environment variables.

The environment a child sees is computed from ours: we start from `os.environ` (or
from nothing, if the Command asked for a clear environment) and apply the Command's
updates and removals. The resulting environment is also where we look up executables
named without a directory, using its `PATH`.

"""
from __future__ import annotations
from childproc.exceptions import ExecutableNotFound
import logging
import os
import sys
import typing as t

__all__ = [
    'Environment',
    'which',
]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

def _has_directory(name: str) -> bool:
    if os.sep in name:
        return True
    return bool(os.altsep) and os.altsep in name # type: ignore

def _candidates(name: str, pathext: t.Optional[str]) -> t.List[str]:
    "On Windows, an executable named without an extension may have any of PATHEXT's"
    if pathext is None:
        return [name]
    exts = [ext for ext in pathext.split(os.pathsep) if ext]
    if any(name.lower().endswith(ext.lower()) for ext in exts):
        return [name]
    return [name + ext for ext in exts]

def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)

def which(name: t.Union[str, os.PathLike], path: t.Optional[str],
          pathext: t.Optional[str]=None) -> str:
    """Locate an executable named `name` in the directories of `path`.

    A name containing a directory separator is returned as-is, without checking it;
    if it doesn't exist, exec will tell us. Otherwise we try each directory of `path`
    in order, throwing ExecutableNotFound if none of them has an executable by that
    name.

    """
    name = os.fsdecode(name)
    if _has_directory(name):
        return name
    if path is None:
        path = os.defpath
    for directory in path.split(os.pathsep):
        if not directory:
            continue
        for candidate in _candidates(name, pathext):
            full = os.path.join(directory, candidate)
            if _is_executable(full):
                logger.debug("which(%s) found %s", name, full)
                return full
    raise ExecutableNotFound(name)

__pdoc__ = {
    'Environment.__getitem__': True,
    'Environment.__contains__': True,
    'Environment.__len__': True,
    'Environment.__delitem__': True,
    'Environment.__setitem__': True,
}
class Environment:
    """A representation of environment variables.

    On Windows, variable names are case-insensitive, so we normalize them to upper case,
    just like `os.environ` does there.

    """
    @staticmethod
    def make_from_environ(environment: t.Optional[t.Mapping[str, str]]=None) -> Environment:
        "Make an Environment from this mapping, or from our own `os.environ`"
        if environment is None:
            environment = os.environ
        return Environment(dict(environment))

    def __init__(self, environment: t.Dict[str, str], case_insensitive: bool=IS_WINDOWS) -> None:
        self.case_insensitive = case_insensitive
        self.data: t.Dict[str, str] = {}
        for key, value in environment.items():
            self[key] = value

    def _key(self, key: str) -> str:
        return key.upper() if self.case_insensitive else key

    def __getitem__(self, key: str) -> str:
        return self.data[self._key(key)]

    def __contains__(self, key: str) -> bool:
        return self._key(key) in self.data

    def __len__(self) -> int:
        return len(self.data)

    def __delitem__(self, key: str) -> None:
        del self.data[self._key(key)]

    def __setitem__(self, key: str, val: str) -> None:
        self.data[self._key(key)] = val

    def get(self, key: str, default: t.Optional[str]=None) -> t.Optional[str]:
        "Like `dict.get`; get an environment variable, with a default."
        return self.data.get(self._key(key), default)

    def updated(self, env_updates: t.Mapping[str, t.Optional[t.Union[str, os.PathLike]]],
                clear: bool=False) -> Environment:
        """Return a new Environment with these updates applied.

        A value of None removes the variable. If `clear` is set, we start from an empty
        environment rather than from this one.

        """
        ret = Environment({} if clear else dict(self.data), self.case_insensitive)
        for key, value in env_updates.items():
            if value is None:
                if key in ret:
                    del ret[key]
            else:
                ret[key] = os.fsdecode(value)
        return ret

    def which(self, name: t.Union[str, os.PathLike], fallback_path: t.Optional[str]=None) -> str:
        "Locate an executable with this name on our `PATH`; throw `ExecutableNotFound` on failure."
        path = self.get("PATH", fallback_path)
        pathext = (self.get("PATHEXT", None) or ".COM;.EXE;.BAT;.CMD") if IS_WINDOWS else None
        return which(name, path, pathext)

    def as_dict(self) -> t.Dict[str, str]:
        return dict(self.data)

    def __repr__(self) -> str:
        return f"Environment({len(self.data)} variables)"
