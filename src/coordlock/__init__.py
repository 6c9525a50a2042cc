"""Fair distributed mutual exclusion on a ZooKeeper-style coordination service."""

from coordlock.core.errors import LockError
from coordlock.core.lock import DistributedLock, LockState

__version__ = "0.3.0"

__all__ = ["DistributedLock", "LockError", "LockState", "__version__"]
