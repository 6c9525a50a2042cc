"""Exceptions raised by the distributed lock and its coordination clients."""

from __future__ import annotations


class LockError(RuntimeError):
    """Base class for every lock failure."""


class StateConsistencyError(LockError):
    """The root listing does not contain the node this handle just created."""

    def __init__(self, root: str, node_name: str | None) -> None:
        super().__init__(
            f"lock in unknown state: candidate {node_name!r} exists but is not listed under {root!r}"
        )
        self.root = root
        self.node_name = node_name


class AmbiguousStateError(LockError):
    """``acquire`` was called while a stale candidate node is still recorded."""

    def __init__(self, node_path: str) -> None:
        super().__init__(
            f"lock in unknown state: candidate {node_path!r} exists but lock not obtained"
        )
        self.node_path = node_path


class AlreadyHeldError(LockError):
    """``acquire`` was called on a handle that already holds the lock."""


class NotHeldError(LockError):
    """``release`` was called on a handle without a candidate node."""


class LockFaultedError(LockError):
    """The handle hit an unrecoverable failure and must be discarded."""


class LockTimeoutError(LockError):
    """The lock was not obtained within the requested timeout."""

    def __init__(self, root: str, timeout: float) -> None:
        super().__init__(f"timed out after {timeout:.3f}s waiting for lock {root!r}")
        self.root = root
        self.timeout = timeout


class CoordinationClientError(LockError):
    """Failure reported by the coordination service for a single operation."""

    def __init__(self, operation: str, path: str, message: str | None = None) -> None:
        detail = message or "coordination request failed"
        super().__init__(f"{operation} {path}: {detail}")
        self.operation = operation
        self.path = path


class NoNodeError(CoordinationClientError):
    """The addressed node does not exist."""


class SessionLostError(CoordinationClientError):
    """The session backing the client expired or was closed."""


__all__ = [
    "AlreadyHeldError",
    "AmbiguousStateError",
    "CoordinationClientError",
    "LockError",
    "LockFaultedError",
    "LockTimeoutError",
    "NoNodeError",
    "NotHeldError",
    "SessionLostError",
    "StateConsistencyError",
]
