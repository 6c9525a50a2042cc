"""Lock handle, errors, metrics and event logging."""

from .errors import (
    AlreadyHeldError,
    AmbiguousStateError,
    CoordinationClientError,
    LockError,
    LockFaultedError,
    LockTimeoutError,
    NoNodeError,
    NotHeldError,
    SessionLostError,
    StateConsistencyError,
)
from .lock import DistributedLock, LockState

__all__ = [
    "AlreadyHeldError",
    "AmbiguousStateError",
    "CoordinationClientError",
    "DistributedLock",
    "LockError",
    "LockFaultedError",
    "LockState",
    "LockTimeoutError",
    "NoNodeError",
    "NotHeldError",
    "SessionLostError",
    "StateConsistencyError",
]
