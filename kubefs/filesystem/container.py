"""Module implementing a remote file system on top of a single container."""

import threading
from typing import Any, BinaryIO, Callable, Coroutine, List, Optional, Tuple, TypeVar

import kubefs.constants as constants
from kubefs.bridge import Bridge
from kubefs.errors import NotConnectedError, RemoteFsError
from kubefs.executor import Executor, load_configuration
from kubefs.filesystem.common import FileEntry, Metadata, Welcome
from kubefs.filesystem.operations import ContainerOperations, sized_source
from kubefs.filesystem.remotefs import RemoteFs
from kubefs.logger import log
from kubefs.target import Target

T = TypeVar("T")


class KubeContainerFs(RemoteFs):
    """
    Remote file system of one container in a Kubernetes pod.

    Every operation is translated into shell commands that are run through the exec
    API of the cluster, so the container needs a POSIX shell and the usual utilities
    (ls, mkdir, rm, tar and so on) but nothing else.

    Example:
    ```
    fs = KubeContainerFs("web-0", container="nginx", namespace="prod")
    fs.connect()

    with open("index.html", "wb") as f:
        fs.open_file("/usr/share/nginx/html/index.html", f)

    fs.disconnect()
    ```
    """

    def __init__(
        self,
        pod: str,
        container: Optional[str] = None,
        namespace: str = constants.DEFAULT_NAMESPACE,
        kubeconfig: Optional[str] = None,
        context: Optional[str] = None,
        timeout: Optional[int] = None,
        bridge: Optional[Bridge] = None,
        workers: Optional[int] = None,
    ):
        """
        Instantiate a disconnected file system for the given container.

        The kubeconfig and context select the cluster, see load_configuration(). If no
        bridge is passed then the file system creates its own when connecting and
        shuts it down again when disconnecting.
        """
        self.target = Target(pod, container, namespace)

        self._kubeconfig = kubeconfig
        self._context = context
        self._timeout = timeout

        self._bridge = bridge
        self._owns_bridge = bridge is None
        self._workers = workers

        self._lock = threading.Lock()
        self._ops: Optional[ContainerOperations] = None

    def _check_connection(self) -> Tuple[Bridge, ContainerOperations]:
        with self._lock:
            if self._ops is None or self._bridge is None:
                raise NotConnectedError(f"not connected to {self.target}")

            return self._bridge, self._ops

    def _run(
        self, operation: Callable[[ContainerOperations], Coroutine[Any, Any, T]]
    ) -> T:
        bridge, ops = self._check_connection()

        return bridge.run(operation(ops))

    #
    # Session
    #

    def connect(self) -> Welcome:
        configuration = load_configuration(self._kubeconfig, self._context)
        ops = ContainerOperations(self.target, Executor(configuration, self._timeout))

        with self._lock:
            if self._bridge is None:
                self._bridge = Bridge(workers=self._workers)
            elif self._owns_bridge:
                self._bridge.start()

            bridge = self._bridge

        try:
            wrkdir = bridge.run(ops.connect())
        except Exception:
            if self._owns_bridge:
                bridge.shutdown()
            raise

        with self._lock:
            self._ops = ops

        log.info(f"connected to {self.target} in {wrkdir}")

        return Welcome(banner=f"connected to {self.target} in {wrkdir}")

    def disconnect(self) -> None:
        with self._lock:
            if self._ops is None:
                return

            self._ops = None
            bridge = self._bridge

        if self._owns_bridge and bridge is not None:
            bridge.shutdown()

        log.info(f"disconnected from {self.target}")

    def is_connected(self) -> bool:
        try:
            return self._run(lambda ops: ops.is_alive())
        except RemoteFsError:
            return False

    def pwd(self) -> str:
        _, ops = self._check_connection()

        return ops.cwd

    def change_dir(self, path: str) -> str:
        return self._run(lambda ops: ops.change_dir(path))

    #
    # Metadata access
    #

    def list_dir(self, path: str) -> List[FileEntry]:
        return self._run(lambda ops: ops.list_dir(path))

    def stat(self, path: str) -> FileEntry:
        return self._run(lambda ops: ops.stat(path))

    def exists(self, path: str) -> bool:
        return self._run(lambda ops: ops.exists(path))

    def find(self, path: str, pattern: str) -> List[FileEntry]:
        return self._run(lambda ops: ops.find(path, pattern))

    #
    # Metadata modification
    #

    def setstat(self, path: str, metadata: Metadata) -> None:
        self._run(lambda ops: ops.setstat(path, metadata))

    #
    # File system structure
    #

    def create_dir(self, path: str, mode: int = constants.DEFAULT_DIR_MODE) -> None:
        self._run(lambda ops: ops.create_dir(path, mode))

    def remove_file(self, path: str) -> None:
        self._run(lambda ops: ops.remove_file(path))

    def remove_dir(self, path: str) -> None:
        self._run(lambda ops: ops.remove_dir(path))

    def remove_dir_all(self, path: str) -> None:
        self._run(lambda ops: ops.remove_dir_all(path))

    def copy(self, src: str, dst: str) -> None:
        self._run(lambda ops: ops.copy(src, dst))

    def mov(self, src: str, dst: str) -> None:
        self._run(lambda ops: ops.mov(src, dst))

    def symlink(self, path: str, target: str) -> None:
        self._run(lambda ops: ops.symlink(path, target))

    #
    # File contents
    #

    def create_file(self, path: str, metadata: Metadata, reader: BinaryIO) -> int:
        self._check_connection()

        with sized_source(reader, metadata.size) as (source, size):
            return self._run(lambda ops: ops.create_file(path, source, size))

    def open_file(self, path: str, writer: BinaryIO) -> int:
        return self._run(lambda ops: ops.open_file(path, writer))

    #
    # Miscellaneous
    #

    def exec(self, command: str) -> Tuple[int, str]:
        """
        Execute a command line verbatim in the working directory of the container.

        The command line is passed to the shell as-is, so it is NOT protected against
        injection and can do anything the container user is allowed to do.
        """
        return self._run(lambda ops: ops.exec(command))
