"Owned handles for the OS resources a Child holds: pipe descriptors and the process itself"
from childproc.handle.fd import FileDescriptor
from childproc.handle.process import ChildPid

__all__ = [
    "FileDescriptor",
    "ChildPid",
]
