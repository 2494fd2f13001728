"""Module that adds flags to pytest and provides a local stand-in for the executor."""

import io
import os
import subprocess
from types import SimpleNamespace
from typing import Optional
from unittest import mock

import pytest

from kubefs.errors import ExecutionError
from kubefs.executor import CommandResult, Executor
from kubefs.filesystem import KubeContainerFs


def pytest_addoption(parser):
    parser.addoption(
        "--kube", action="store_true", default=False, help="Run live cluster tests"
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "kube: mark test as requiring a live cluster")


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--kube"):
        skip_kube = pytest.mark.skip(reason="only runs with --kube option")

        for item in items:
            if "kube" in item.keywords:
                item.add_marker(skip_kube)


def fake_pod(name="pod", containers=("main",), phase="Running"):
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name),
        spec=SimpleNamespace(containers=[SimpleNamespace(name=c) for c in containers]),
        status=SimpleNamespace(phase=phase),
    )


class LocalExecutor:
    """Executor that runs the command lines with the local shell instead of a pod."""

    def __init__(self):
        self.commands = []

        # Commands see the environment of the test run, like a container with its own
        # locale and timezone
        self.env = dict(os.environ)

    def _shell(
        self,
        command: str,
        cwd: Optional[str] = None,
        stdin: bytes = b"",
        portable: bool = True,
    ):
        self.commands.append(command)

        return subprocess.run(
            Executor.shell(command, cwd, portable),
            input=stdin,
            capture_output=True,
            env=self.env,
        )

    async def read_pod(self, target):
        return fake_pod(target.pod)

    async def read_pod_status(self, target):
        return fake_pod(target.pod)

    async def list_pods(self, namespace, label_selector=None):
        return [fake_pod()]

    async def run(self, target, command, cwd=None, portable=True):
        proc = self._shell(command, cwd, portable=portable)

        return CommandResult(
            proc.returncode, proc.stdout.decode(), proc.stderr.decode()
        )

    async def upload(self, target, command, reader, size):
        data = reader.read(size)

        if len(data) < size:
            raise ExecutionError(f"source ended after {len(data)} of {size} bytes")

        proc = self._shell(command, stdin=data)

        return CommandResult(proc.returncode, "", proc.stderr.decode())

    async def download(self, target, command, consume):
        proc = self._shell(command)
        value = consume(io.BytesIO(proc.stdout))

        if proc.returncode != 0:
            raise ExecutionError(
                "download failed", proc.returncode, proc.stderr.decode()
            )

        return value


@pytest.fixture
def local_executor():
    return LocalExecutor()


@pytest.fixture
def local_fs(local_executor):
    with mock.patch("kubefs.filesystem.container.load_configuration"):
        with mock.patch(
            "kubefs.filesystem.container.Executor", return_value=local_executor
        ):
            fs = KubeContainerFs("pod", "main")
            fs.connect()

    try:
        yield fs
    finally:
        fs.disconnect()
