"""
Module that runs commands inside containers through the Kubernetes exec API.

Kubernetes doesn't offer any file transfer protocol, only the ability to execute a
command inside a container with its stdin, stdout and stderr attached to a websocket.
Everything kubefs does is built on top of the three primitives in this module:

* run() executes a command line and buffers its (small) output.
* upload() streams a local byte source into the stdin of a remote command.
* download() hands the stdout of a remote command to a consumer as a binary file-like
object, so that file contents never have to be held in memory at once.

The official kubernetes client is synchronous, so every exec stream is driven by a
worker thread (asyncio.to_thread). That allows streams to multiple containers to run
concurrently on a single event loop. Note that stream() temporarily patches the request
method of the API client it is given, which is why every exec stream gets a fresh API
client instead of sharing one.
"""

import asyncio
from dataclasses import dataclass
import shlex
import time
from typing import Any, BinaryIO, Callable, List, Optional, TypeVar

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream
from websocket import WebSocketException

import kubefs.constants as constants
from kubefs.errors import ExecutionError, RemoteConnectionError, RemoteFsError
from kubefs.logger import log, log_exec
from kubefs.target import Target

T = TypeVar("T")

# Seconds to block on the websocket before checking for new output again
POLL_INTERVAL = 1

# Makes the output of ls and the messages of utilities independent of the locale and
# timezone of the container
PORTABLE_ENVIRONMENT = "export LC_ALL=C TZ=UTC\nunset TIME_STYLE"


@dataclass
class CommandResult:
    """Exit status and captured output of a remote command."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def load_configuration(
    kubeconfig: Optional[str] = None, context: Optional[str] = None
) -> client.Configuration:
    """
    Load the cluster configuration.

    Without an explicit kubeconfig or context the in-cluster service account is tried
    first, falling back to the default kubeconfig (~/.kube/config).
    """
    configuration = client.Configuration()

    try:
        if kubeconfig is None and context is None:
            try:
                config.load_incluster_config(client_configuration=configuration)
                log.debug("loaded in-cluster configuration")
                return configuration
            except config.ConfigException:
                pass

        config.load_kube_config(
            config_file=kubeconfig,
            context=context,
            client_configuration=configuration,
        )
        log.debug(f"loaded kubeconfig {kubeconfig or '(default)'}")
    except (config.ConfigException, OSError) as e:
        raise RemoteConnectionError(f"failed to load cluster configuration: {e}")

    return configuration


class _ExecStdout:
    """Read-only binary file-like view on the stdout channel of an exec stream."""

    def __init__(self, resp: Any):
        self._resp = resp
        self._buffer = bytearray()
        self._stderr: List[str] = []

    @property
    def stderr(self) -> str:
        return "".join(self._stderr)

    def _pump(self) -> None:
        """Move pending output of the stream into the buffers."""
        if self._resp.is_open():
            self._resp.update(timeout=POLL_INTERVAL)

        chunk = self._resp.read_stdout(timeout=0)
        if chunk:
            self._buffer += chunk if isinstance(chunk, bytes) else chunk.encode()

        err = self._resp.read_stderr(timeout=0)
        if err:
            self._stderr.append(
                err.decode(errors="replace") if isinstance(err, bytes) else err
            )

    def read(self, size: int = -1) -> bytes:
        while size < 0 or len(self._buffer) < size:
            if not self._resp.is_open():
                # Output that arrived together with the close frame
                self._pump()
                break

            self._pump()

        if size < 0:
            size = len(self._buffer)

        data = bytes(self._buffer[:size])
        del self._buffer[:size]

        return data

    def drain(self) -> None:
        """Discard the remaining output until the remote process exits."""
        while self._resp.is_open():
            self._pump()
            self._buffer.clear()

        self._pump()
        self._buffer.clear()


class Executor:
    """Runs commands inside the containers of a cluster."""

    def __init__(
        self, configuration: client.Configuration, timeout: Optional[int] = None
    ):
        """
        Instantiate an executor for the cluster described by the configuration.

        The timeout (in seconds) applies to establishing connections. Commands
        themselves may run for as long as they need.
        """
        self._configuration = configuration
        self._timeout = timeout

        self._api = client.CoreV1Api(client.ApiClient(configuration))

    #
    # Pod discovery
    #

    async def read_pod(self, target: Target) -> Any:
        """Retrieve the pod of a target, or raise a connection error."""
        return await asyncio.to_thread(
            self._call_api,
            self._api.read_namespaced_pod,
            target.pod,
            target.namespace,
        )

    async def read_pod_status(self, target: Target) -> Any:
        return await asyncio.to_thread(
            self._call_api,
            self._api.read_namespaced_pod_status,
            target.pod,
            target.namespace,
        )

    async def list_pods(
        self, namespace: str, label_selector: Optional[str] = None
    ) -> List[Any]:
        """List the pods in a namespace, optionally filtered by a label selector."""
        kwargs = {"label_selector": label_selector} if label_selector else {}

        pods = await asyncio.to_thread(
            self._call_api, self._api.list_namespaced_pod, namespace, **kwargs
        )

        return list(pods.items)

    def _call_api(self, method: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        if self._timeout is not None:
            kwargs["_request_timeout"] = self._timeout

        try:
            return method(*args, **kwargs)
        except ApiException as e:
            raise RemoteConnectionError(
                f"cluster API call {method.__name__} failed: {e.status} {e.reason}"
            )
        except (OSError, WebSocketException) as e:
            raise RemoteConnectionError(
                f"cluster API call {method.__name__} failed: {e}"
            )

    #
    # Exec streams
    #

    @staticmethod
    def shell(
        command: str, cwd: Optional[str] = None, portable: bool = True
    ) -> List[str]:
        """
        Wrap a command line to be interpreted by the shell in the given directory.

        Portable command lines run in the C locale and UTC, so that their output can be
        parsed. Otherwise the command line sees the environment of the container.
        """
        if cwd is not None:
            command = f"cd {shlex.quote(cwd)} || exit\n{command}"

        if portable:
            command = f"{PORTABLE_ENVIRONMENT}\n{command}"

        return [constants.SHELL, "-c", command]

    def _open(self, target: Target, argv: List[str], stdin: bool, binary: bool) -> Any:
        """Open an exec stream to the target that is controlled by the caller."""
        api = client.CoreV1Api(client.ApiClient(self._configuration))

        kwargs = {}
        if target.container is not None:
            kwargs["container"] = target.container
        if self._timeout is not None:
            kwargs["_request_timeout"] = self._timeout

        try:
            return stream(
                api.connect_get_namespaced_pod_exec,
                target.pod,
                target.namespace,
                command=argv,
                stdin=stdin,
                stdout=True,
                stderr=True,
                tty=False,
                binary=binary,
                _preload_content=False,
                **kwargs,
            )
        except ApiException as e:
            raise RemoteConnectionError(
                f"failed to open exec stream to {target}: {e.status} {e.reason}"
            )
        except (OSError, WebSocketException) as e:
            raise RemoteConnectionError(f"failed to open exec stream to {target}: {e}")

    @staticmethod
    def _returncode(target: Target, resp: Any) -> int:
        """Read the exit status of the remote process from the exec error channel."""
        try:
            return int(resp.returncode)
        except (TypeError, ValueError, KeyError, IndexError) as e:
            raise RemoteConnectionError(f"no exit status received from {target}: {e}")

    def _run(
        self, target: Target, command: str, cwd: Optional[str], portable: bool
    ) -> CommandResult:
        t_start = time.time()
        argv = self.shell(command, cwd, portable)

        resp = self._open(target, argv, stdin=False, binary=False)

        stdout: List[str] = []
        stderr: List[str] = []

        try:
            while True:
                is_open = resp.is_open()

                if is_open:
                    resp.update(timeout=POLL_INTERVAL)

                stdout.append(resp.read_stdout(timeout=0) or "")
                stderr.append(resp.read_stderr(timeout=0) or "")

                if not is_open:
                    break

            rc = self._returncode(target, resp)
        except RemoteFsError:
            raise
        except (OSError, WebSocketException) as e:
            raise RemoteConnectionError(f"exec stream to {target} failed: {e}")
        finally:
            resp.close()

        log_exec(target, command, rc, t_start)

        return CommandResult(rc, "".join(stdout), "".join(stderr))

    @staticmethod
    def _write_stdin(resp: Any, reader: BinaryIO, size: int) -> None:
        """Send exactly size bytes from reader to the stdin of an exec stream."""
        remaining = size

        while remaining > 0:
            chunk = reader.read(min(constants.CHUNK_SIZE, remaining))

            if not chunk:
                raise ExecutionError(
                    f"source ended after {size - remaining} of {size} bytes"
                )

            resp.write_stdin(chunk)
            remaining -= len(chunk)

            # Keep up with output so the stream doesn't stall on full buffers
            resp.update(timeout=0)

    def _upload(
        self, target: Target, command: str, reader: BinaryIO, size: int
    ) -> CommandResult:
        t_start = time.time()
        argv = self.shell(command)

        resp = self._open(target, argv, stdin=True, binary=True)
        stdout = _ExecStdout(resp)

        try:
            interrupted: Optional[Exception] = None

            try:
                self._write_stdin(resp, reader, size)
            except (OSError, WebSocketException) as e:
                # The remote command may exit without reading its stdin, for example
                # when its output redirection fails
                log.debug(f"upload to {target} interrupted: {e}")
                interrupted = e

            stdout.drain()

            try:
                rc = self._returncode(target, resp)
            except RemoteConnectionError:
                if interrupted is None:
                    raise
                raise RemoteConnectionError(f"upload to {target} failed: {interrupted}")

            # Only a failed remote command explains why stdin was closed early
            if interrupted is not None and rc == 0:
                raise RemoteConnectionError(f"upload to {target} failed: {interrupted}")
        except RemoteFsError:
            raise
        except (OSError, WebSocketException) as e:
            raise RemoteConnectionError(f"upload to {target} failed: {e}")
        finally:
            resp.close()

        log_exec(target, command, rc, t_start)

        return CommandResult(rc, "", stdout.stderr)

    def _download(
        self, target: Target, command: str, consume: Callable[[BinaryIO], T]
    ) -> T:
        t_start = time.time()
        argv = self.shell(command)

        resp = self._open(target, argv, stdin=False, binary=True)
        stdout = _ExecStdout(resp)

        try:
            value = consume(stdout)  # type: ignore[arg-type]

            stdout.drain()
            rc = self._returncode(target, resp)
        except RemoteFsError:
            raise
        except (OSError, WebSocketException) as e:
            raise RemoteConnectionError(f"download from {target} failed: {e}")
        finally:
            resp.close()

        log_exec(target, command, rc, t_start)

        if rc != 0:
            raise ExecutionError(f"download from {target} failed", rc, stdout.stderr)

        return value

    async def run(
        self,
        target: Target,
        command: str,
        cwd: Optional[str] = None,
        portable: bool = True,
    ) -> CommandResult:
        """Run a shell command line in the target and collect its output."""
        return await asyncio.to_thread(self._run, target, command, cwd, portable)

    async def upload(
        self, target: Target, command: str, reader: BinaryIO, size: int
    ) -> CommandResult:
        """
        Run a shell command line with exactly size bytes from reader as its stdin.

        The remote command must stop reading on its own after size bytes, because the
        exec protocol has no way to signal the end of stdin.
        """
        return await asyncio.to_thread(
            self._upload, target, command, reader, size
        )

    async def download(
        self, target: Target, command: str, consume: Callable[[BinaryIO], T]
    ) -> T:
        """
        Run a shell command line and pass its stdout to consume as a file-like object.

        The result of consume is returned once the remote command exits successfully.
        """
        return await asyncio.to_thread(
            self._download, target, command, consume
        )
