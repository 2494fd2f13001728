"""Data structures that identify exec endpoints and the outcomes of fan-out calls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

import kubefs.constants as constants

T = TypeVar("T")


@dataclass(frozen=True)
class Target:
    """
    A (namespace, pod, container) triple identifying one exec-reachable endpoint.

    The container may be omitted for pods with a single container, in which case the
    cluster picks the pod's only (or default) container.
    """

    pod: str
    container: Optional[str] = None
    namespace: str = constants.DEFAULT_NAMESPACE

    def __post_init__(self) -> None:
        """Validate the identifiers."""
        if not self.pod:
            raise ValueError("pod name must not be empty")

        if not self.namespace:
            raise ValueError("namespace must not be empty")

    @property
    def name(self) -> str:
        """Return the display name in the format namespace/pod/container."""
        return f"{self.namespace}/{self.pod}/{self.container or ''}".rstrip("/")

    @staticmethod
    def parse(text: str, namespace: str = constants.DEFAULT_NAMESPACE) -> Target:
        """
        Parse a target from pod, pod/container or namespace/pod/container notation.

        The namespace argument is used when the notation doesn't include one.
        """
        parts = text.strip("/").split("/")

        if len(parts) == 1:
            return Target(pod=parts[0], namespace=namespace)
        elif len(parts) == 2:
            return Target(pod=parts[0], container=parts[1] or None, namespace=namespace)
        elif len(parts) == 3:
            return Target(pod=parts[1], container=parts[2] or None, namespace=parts[0])
        else:
            raise ValueError(f"invalid target '{text}'")

    def __str__(self) -> str:
        return self.name


@dataclass
class TargetResult(Generic[T]):
    """Outcome of an operation on a single target of a fan-out call."""

    target: Target
    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        """Return whether the operation succeeded on this target."""
        return self.error is None

    def unwrap(self) -> Any:
        """Return the value or raise the error of this target."""
        if self.error is not None:
            raise self.error

        return self.value
