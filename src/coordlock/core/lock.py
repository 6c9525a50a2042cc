"""Fair distributed lock built on sequential ephemeral nodes.

Each contender creates one ephemeral, sequential child under the lock root and
then loops:

1. List the root's children (no watch) and order them by sequence number.
2. If its own node is the smallest, the lock is held.
3. Otherwise set an existence watch on the *immediate predecessor* only. If the
   predecessor is already gone, list again straight away; if not, block until
   the watch fires and then list again.

Releasing deletes the node. Because every node is watched by at most one
contender, a release wakes exactly one waiter and the queue is served in
creation order.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from types import TracebackType

from coordlock.coordination.base import (
    CoordinationClient,
    join_path,
    sort_by_sequence,
)
from coordlock.core.errors import (
    AlreadyHeldError,
    AmbiguousStateError,
    CoordinationClientError,
    LockFaultedError,
    LockTimeoutError,
    NotHeldError,
    SessionLostError,
    StateConsistencyError,
)
from coordlock.core.metrics import KPIStore, METRICS

DEFAULT_PREFIX = "lock-"

log = logging.getLogger("coordlock.lock")


class LockState(str, Enum):
    IDLE = "idle"
    CREATING = "creating"
    QUEUED = "queued"
    HELD = "held"
    FAULTED = "faulted"


class DistributedLock:
    """Handle on one named lock for a single contender.

    The handle keeps a reference to ``client`` but never opens or closes it;
    ephemeral nodes live exactly as long as the client's session.
    """

    def __init__(
        self,
        client: CoordinationClient,
        root: str,
        *,
        prefix: str = DEFAULT_PREFIX,
        metrics: KPIStore | None = None,
    ) -> None:
        if not root.startswith("/"):
            raise ValueError(f"lock root must be an absolute path: {root!r}")
        self._client = client
        self._root = root.rstrip("/") or "/"
        self._prefix = prefix
        self._metrics = metrics or METRICS
        self._node_name: str | None = None
        self._state = LockState.IDLE

    @property
    def root(self) -> str:
        return self._root

    @property
    def state(self) -> LockState:
        return self._state

    @property
    def held(self) -> bool:
        return self._state is LockState.HELD

    @property
    def node_name(self) -> str | None:
        """Name of this handle's candidate node, ``None`` when there is none."""

        return self._node_name

    @property
    def node_path(self) -> str | None:
        if self._node_name is None:
            return None
        return join_path(self._root, self._node_name)

    def contenders(self) -> list[str]:
        """Return the current queue under the root, holder first."""

        return sort_by_sequence(self._client.list_children(self._root))

    def acquire(self, timeout: float | None = None) -> None:
        """Block until the lock is held.

        With ``timeout`` set, the candidate node is deleted and
        :class:`LockTimeoutError` raised once the deadline passes. Coordination
        failures propagate with the candidate node left in place; call
        :meth:`release` to clean it up before acquiring again.
        """

        if self._state is LockState.FAULTED:
            raise LockFaultedError(f"lock handle for {self._root!r} is faulted")
        if self._state is LockState.HELD:
            raise AlreadyHeldError(f"lock {self._root!r} is already held by this handle")
        if self._state is LockState.CREATING or self._node_name is not None:
            raise AmbiguousStateError(self.node_path or self._root)

        started = time.monotonic()
        deadline = None if timeout is None else started + max(0.0, timeout)

        self._state = LockState.CREATING
        try:
            self._node_name = self._client.create_sequential_ephemeral(self._root, self._prefix)
        except SessionLostError:
            self._state = LockState.FAULTED
            raise
        except Exception:
            self._state = LockState.IDLE
            raise
        self._state = LockState.QUEUED
        log.debug("created candidate %s", self.node_path)

        try:
            self._wait_for_turn(deadline)
        except (SessionLostError, StateConsistencyError):
            self._state = LockState.FAULTED
            raise

        if self._state is not LockState.HELD:
            self._abandon(timeout or 0.0)

        wait_ms = (time.monotonic() - started) * 1000
        self._metrics.record_acquired(wait_ms)
        log.debug("acquired %s after %.1fms", self.node_path, wait_ms)

    def _wait_for_turn(self, deadline: float | None) -> None:
        own = self._node_name
        while True:
            children = sort_by_sequence(self._client.list_children(self._root))
            if not children or own not in children:
                raise StateConsistencyError(self._root, own)

            if children[0] == own:
                self._state = LockState.HELD
                return

            predecessor = join_path(self._root, children[children.index(own) - 1])
            exists, signal = self._client.watch_existence(predecessor)
            if not exists:
                self._metrics.increment_counter("watch_skips_total")
                continue

            log.debug("%s queued behind %s", own, predecessor)
            if deadline is None:
                signal.wait()
            elif not signal.wait(max(0.0, deadline - time.monotonic())):
                return
            if signal.session_lost:
                raise SessionLostError("watch_existence", predecessor, "session lost while waiting")
            self._metrics.increment_counter("wakeups_total")

    def _abandon(self, timeout: float) -> None:
        error = LockTimeoutError(self._root, timeout)
        try:
            self._client.delete(self.node_path or self._root)
        except SessionLostError as exc:
            self._state = LockState.FAULTED
            raise exc from error
        except CoordinationClientError as exc:
            raise exc from error
        log.debug("gave up on %s after %.3fs", self.node_path, timeout)
        self._node_name = None
        self._state = LockState.IDLE
        self._metrics.increment_counter("timeouts_total")
        raise error

    def release(self) -> None:
        """Delete the candidate node.

        A failed delete leaves the state untouched so the call can be retried,
        except for session loss, which faults the handle.
        """

        if self._state is LockState.FAULTED:
            raise LockFaultedError(f"lock handle for {self._root!r} is faulted")
        path = self.node_path
        if path is None:
            raise NotHeldError(f"lock {self._root!r} has no candidate node to release")

        was_held = self.held
        try:
            self._client.delete(path)
        except SessionLostError:
            self._state = LockState.FAULTED
            raise
        self._node_name = None
        self._state = LockState.IDLE
        if was_held:
            self._metrics.record_released()
        log.debug("released %s", path)

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"DistributedLock(root={self._root!r}, node={self._node_name!r}, state={self._state.value})"
