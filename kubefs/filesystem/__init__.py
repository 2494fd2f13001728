"""
Modules that expose the file systems of Kubernetes containers.

Kubernetes doesn't provide a way to access the files inside a container other than
executing commands in it. The file systems in this module are therefore built entirely
on top of the exec API: every operation is translated into one or more invocations of
standard utilities like ls, mkdir and tar, and their output is parsed back into
structured results.

* KubeContainerFs operates on a single container.
* KubeMultiTargetFs operates on a set of containers at once, running operations on all
  of them concurrently and reporting the outcome per container.

Both implement the RemoteFs interface. The exec API has no notion of file handles, so
random access and appending are not supported. Files are always transferred in full
with create_file() and open_file().
"""

from .container import KubeContainerFs
from .multitarget import ALL, KubeMultiTargetFs
from .remotefs import RemoteFs

__all__ = [
    "ALL",
    "KubeContainerFs",
    "KubeMultiTargetFs",
    "RemoteFs",
]
