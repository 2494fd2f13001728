"""
Module implementing a remote file system that spans several containers.

Operations accept a target selector that picks the containers they are run on:

* A Target, a "pod/container" or "namespace/pod/container" string, or the name of a pod
  with a single configured container selects exactly one target. The operation then
  returns its value directly, just like KubeContainerFs.
* ALL_TARGETS ("*") or the name of a pod with several configured containers fans the
  operation out. It then returns a dict that maps every selected Target onto a
  TargetResult with either its value or its error.

A fan-out operation runs on all selected targets concurrently and a failure on one
target doesn't affect the others. Only if the operation fails on every target is an
AggregateError raised.
"""

import asyncio
import tempfile
import threading
from typing import (
    Any,
    BinaryIO,
    Callable,
    Coroutine,
    Dict,
    IO,
    Iterable,
    List,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

import kubefs.constants as constants
from kubefs.bridge import Bridge
from kubefs.errors import (
    AggregateError,
    NotConnectedError,
    RemoteFsError,
    TargetNotFoundError,
    UnsupportedOperationError,
)
from kubefs.executor import Executor, load_configuration
from kubefs.filesystem.common import Metadata, Welcome
from kubefs.filesystem.operations import ContainerOperations, sized_source
from kubefs.filesystem.remotefs import RemoteFs
from kubefs.logger import log
from kubefs.target import Target, TargetResult

T = TypeVar("T")

ALL = constants.ALL_TARGETS

Selector = Union[Target, str]
Operation = Callable[[ContainerOperations], Coroutine[Any, Any, T]]


def _spool(reader: BinaryIO, size: Optional[int], spool: IO[bytes]) -> int:
    """Copy size bytes (or everything if None) from reader to spool."""
    copied = 0

    while size is None or copied < size:
        limit = constants.CHUNK_SIZE if size is None else size - copied
        chunk = reader.read(min(constants.CHUNK_SIZE, limit))

        if not chunk:
            break

        spool.write(chunk)
        copied += len(chunk)

    spool.flush()

    return copied


class KubeMultiTargetFs(RemoteFs):
    """Remote file system over a fixed set of containers sharing one event loop."""

    def __init__(
        self,
        targets: Iterable[Target],
        namespace: str = constants.DEFAULT_NAMESPACE,
        kubeconfig: Optional[str] = None,
        context: Optional[str] = None,
        timeout: Optional[int] = None,
        bridge: Optional[Bridge] = None,
        workers: Optional[int] = None,
    ):
        """
        Instantiate a disconnected file system for a non-empty set of targets.

        The namespace is the default for list_pods() and list_containers(). The other
        arguments have the same meaning as for KubeContainerFs.
        """
        self._targets = list(dict.fromkeys(targets))

        if not self._targets:
            raise ValueError("at least one target is required")

        self.namespace = namespace

        self._kubeconfig = kubeconfig
        self._context = context
        self._timeout = timeout

        self._bridge = bridge
        self._owns_bridge = bridge is None
        self._workers = workers

        self._lock = threading.Lock()
        self._executor: Optional[Executor] = None
        self._ops: Dict[Target, ContainerOperations] = {}

    @property
    def targets(self) -> List[Target]:
        """Return the configured targets in the order they were given."""
        return list(self._targets)

    def resolve(self, selector: Selector) -> Tuple[List[Target], bool]:
        """
        Resolve a target selector into a list of targets.

        The second return value tells whether the selector fans out, in which case
        the operation returns per-target results instead of a plain value.
        """
        if isinstance(selector, Target):
            if selector not in self._targets:
                raise TargetNotFoundError(f"unknown target {selector}")

            return [selector], False

        if selector == ALL:
            return list(self._targets), True

        parts = selector.strip("/").split("/")

        if len(parts) == 1:
            matches = [t for t in self._targets if t.pod == parts[0]]

            if not matches:
                raise TargetNotFoundError(f"unknown pod {selector}")

            return matches, len(matches) > 1
        elif len(parts) == 2:
            pod, container = parts
            matches = [
                t for t in self._targets if t.pod == pod and t.container == container
            ]
        elif len(parts) == 3:
            matches = [t for t in self._targets if t.name == "/".join(parts)]
        else:
            raise TargetNotFoundError(f"invalid target selector {selector}")

        if len(matches) != 1:
            reason = "ambiguous" if matches else "unknown"
            raise TargetNotFoundError(f"{reason} target {selector}")

        return matches, False

    def _check_connection(
        self,
    ) -> Tuple[Bridge, Executor, Dict[Target, ContainerOperations]]:
        with self._lock:
            if self._executor is None or self._bridge is None:
                raise NotConnectedError("not connected")

            return self._bridge, self._executor, self._ops

    async def _fan_out(
        self, name: str, operations: List[ContainerOperations], operation: Operation
    ) -> Dict[Target, TargetResult]:
        outcomes = await asyncio.gather(
            *(operation(ops) for ops in operations), return_exceptions=True
        )

        results: Dict[Target, TargetResult] = {}

        for ops, outcome in zip(operations, outcomes):
            if isinstance(outcome, Exception):
                results[ops.target] = TargetResult(ops.target, error=outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results[ops.target] = TargetResult(ops.target, value=outcome)

        failed = sum(not result.ok for result in results.values())

        if failed == len(results):
            raise AggregateError(name, results)
        elif failed > 0:
            log.debug(f"{name} failed on {failed} of {len(results)} targets")

        return results

    def _dispatch(self, name: str, selector: Selector, operation: Operation) -> Any:
        """Run an operation on the selected targets."""
        bridge, _, ops = self._check_connection()
        targets, fan_out = self.resolve(selector)

        if not fan_out:
            return bridge.run(operation(ops[targets[0]]))

        return bridge.run(self._fan_out(name, [ops[t] for t in targets], operation))

    #
    # Session
    #

    def connect(self) -> Welcome:
        configuration = load_configuration(self._kubeconfig, self._context)
        executor = Executor(configuration, self._timeout)

        operations = [ContainerOperations(t, executor) for t in self._targets]

        with self._lock:
            if self._bridge is None:
                self._bridge = Bridge(workers=self._workers)
            elif self._owns_bridge:
                self._bridge.start()

            bridge = self._bridge

        async def connect_all() -> List[Any]:
            return await asyncio.gather(
                *(ops.connect() for ops in operations), return_exceptions=True
            )

        try:
            outcomes = bridge.run(connect_all())

            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
        except BaseException:
            if self._owns_bridge:
                bridge.shutdown()
            raise

        with self._lock:
            self._executor = executor
            self._ops = {ops.target: ops for ops in operations}

        log.info(f"connected to {len(operations)} targets")

        return Welcome(
            banner=f"connected to {', '.join(t.name for t in self._targets)}"
        )

    def disconnect(self) -> None:
        with self._lock:
            if self._executor is None:
                return

            self._executor = None
            self._ops = {}
            bridge = self._bridge

        if self._owns_bridge and bridge is not None:
            bridge.shutdown()

        log.info(f"disconnected from {len(self._targets)} targets")

    def is_connected(self) -> bool:
        """Check if the file system is connected and every target is running."""
        try:
            results = self._dispatch("is_connected", ALL, lambda ops: ops.is_alive())
        except RemoteFsError:
            return False

        if isinstance(results, dict):
            return all(result.ok and result.value for result in results.values())

        return bool(results)

    def pwd(self, target: Selector = ALL) -> Any:
        _, _, ops = self._check_connection()
        targets, fan_out = self.resolve(target)

        if not fan_out:
            return ops[targets[0]].cwd

        return {t: TargetResult(t, value=ops[t].cwd) for t in targets}

    def change_dir(self, path: str, target: Selector = ALL) -> Any:
        return self._dispatch("change_dir", target, lambda ops: ops.change_dir(path))

    #
    # Discovery
    #

    def list_pods(
        self, namespace: Optional[str] = None, label_selector: Optional[str] = None
    ) -> List[str]:
        """List the names of the pods in a namespace."""
        bridge, executor, _ = self._check_connection()

        pods = bridge.run(
            executor.list_pods(namespace or self.namespace, label_selector)
        )

        return [pod.metadata.name for pod in pods]

    def list_containers(self, pod: str, namespace: Optional[str] = None) -> List[str]:
        """List the names of the containers in a pod."""
        bridge, executor, _ = self._check_connection()

        target = Target(pod, namespace=namespace or self.namespace)
        obj = bridge.run(executor.read_pod(target))

        return [container.name for container in obj.spec.containers]

    #
    # Metadata access
    #

    def list_dir(self, path: str, target: Selector = ALL) -> Any:
        return self._dispatch("list_dir", target, lambda ops: ops.list_dir(path))

    def stat(self, path: str, target: Selector = ALL) -> Any:
        return self._dispatch("stat", target, lambda ops: ops.stat(path))

    def exists(self, path: str, target: Selector = ALL) -> Any:
        return self._dispatch("exists", target, lambda ops: ops.exists(path))

    def find(self, path: str, pattern: str, target: Selector = ALL) -> Any:
        return self._dispatch("find", target, lambda ops: ops.find(path, pattern))

    #
    # Metadata modification
    #

    def setstat(self, path: str, metadata: Metadata, target: Selector = ALL) -> Any:
        return self._dispatch(
            "setstat", target, lambda ops: ops.setstat(path, metadata)
        )

    #
    # File system structure
    #

    def create_dir(
        self,
        path: str,
        mode: int = constants.DEFAULT_DIR_MODE,
        target: Selector = ALL,
    ) -> Any:
        return self._dispatch(
            "create_dir", target, lambda ops: ops.create_dir(path, mode)
        )

    def remove_file(self, path: str, target: Selector = ALL) -> Any:
        return self._dispatch("remove_file", target, lambda ops: ops.remove_file(path))

    def remove_dir(self, path: str, target: Selector = ALL) -> Any:
        return self._dispatch("remove_dir", target, lambda ops: ops.remove_dir(path))

    def remove_dir_all(self, path: str, target: Selector = ALL) -> Any:
        return self._dispatch(
            "remove_dir_all", target, lambda ops: ops.remove_dir_all(path)
        )

    def copy(self, src: str, dst: str, target: Selector = ALL) -> Any:
        return self._dispatch("copy", target, lambda ops: ops.copy(src, dst))

    def mov(self, src: str, dst: str, target: Selector = ALL) -> Any:
        return self._dispatch("mov", target, lambda ops: ops.mov(src, dst))

    def symlink(self, path: str, target_path: str, target: Selector = ALL) -> Any:
        return self._dispatch(
            "symlink", target, lambda ops: ops.symlink(path, target_path)
        )

    #
    # File contents
    #

    def create_file(
        self, path: str, metadata: Metadata, reader: BinaryIO, target: Selector = ALL
    ) -> Any:
        """
        Create or truncate a file with the contents of reader on the selected targets.

        When fanning out, the contents are spooled to a temporary file first so that
        every target can read them at its own pace.
        """
        self._check_connection()
        _, fan_out = self.resolve(target)

        if not fan_out:
            with sized_source(reader, metadata.size) as (source, size):
                return self._dispatch(
                    "create_file",
                    target,
                    lambda ops: ops.create_file(path, source, size),
                )

        with tempfile.NamedTemporaryFile(prefix="kubefs-") as spool:
            copied = _spool(reader, metadata.size, spool)
            size = metadata.size if metadata.size is not None else copied

            async def upload(ops: ContainerOperations) -> int:
                with open(spool.name, "rb") as source:
                    return await ops.create_file(path, source, size)

            return self._dispatch("create_file", target, upload)

    def open_file(self, path: str, writer: BinaryIO, target: Selector = ALL) -> Any:
        """
        Write the contents of a file on one target into writer.

        Multiple targets can't write into the same writer, so selectors that fan out
        are rejected.
        """
        targets, fan_out = self.resolve(target)

        if fan_out:
            raise UnsupportedOperationError(
                f"open_file needs a single target, {target} selects {len(targets)}"
            )

        return self._dispatch(
            "open_file", target, lambda ops: ops.open_file(path, writer)
        )

    def append_file(
        self, path: str, metadata: Metadata, reader: BinaryIO, target: Selector = ALL
    ) -> Any:
        raise UnsupportedOperationError("append_file is not supported")

    def append(self, path: str, metadata: Metadata, target: Selector = ALL) -> Any:
        raise UnsupportedOperationError("append is not supported")

    def create(self, path: str, metadata: Metadata, target: Selector = ALL) -> Any:
        raise UnsupportedOperationError("create is not supported")

    def open(self, path: str, target: Selector = ALL) -> Any:
        raise UnsupportedOperationError("open is not supported")

    #
    # Miscellaneous
    #

    def exec(self, command: str, target: Selector = ALL) -> Any:
        """
        Execute a command line verbatim on the selected targets.

        The command line is NOT quoted or escaped and may have arbitrary side effects.
        """
        return self._dispatch("exec", target, lambda ops: ops.exec(command))
