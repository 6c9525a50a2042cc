"""Adapter exposing a ``kazoo`` client through the coordination protocol."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, TypeVar

from kazoo.exceptions import (
    ConnectionClosedError,
    KazooException,
    NoNodeError as KazooNoNodeError,
    SessionExpiredError,
    ZookeeperError,
)
from kazoo.handlers.threading import KazooTimeoutError
from kazoo.protocol.states import EventType, KazooState

from coordlock.core.errors import CoordinationClientError, NoNodeError, SessionLostError

from .base import (
    EVENT_CHANGED,
    EVENT_CREATED,
    EVENT_DELETED,
    EVENT_SESSION_LOST,
    WatchSignal,
    join_path,
    node_basename,
)

if TYPE_CHECKING:
    from kazoo.client import KazooClient
    from kazoo.protocol.states import WatchedEvent

log = logging.getLogger("coordlock.coordination.zookeeper")

T = TypeVar("T")

_EVENT_KINDS = {
    EventType.DELETED: EVENT_DELETED,
    EventType.CREATED: EVENT_CREATED,
    EventType.CHANGED: EVENT_CHANGED,
}


class ZooKeeperCoordinationClient:
    """Translate the four lock operations into kazoo calls.

    The kazoo client is borrowed: starting, authenticating and stopping it is
    the caller's job. A ``LOST`` connection state fails every outstanding watch
    signal so blocked waiters wake up instead of hanging on a dead session.
    """

    def __init__(self, client: KazooClient) -> None:
        self._client = client
        self._pending: set[WatchSignal] = set()
        self._pending_lock = threading.Lock()
        client.add_listener(self._on_state)

    @property
    def client(self) -> KazooClient:
        return self._client

    def _on_state(self, state: str) -> None:
        if state != KazooState.LOST:
            return
        with self._pending_lock:
            pending = list(self._pending)
            self._pending.clear()
        for signal in pending:
            signal.fire(EVENT_SESSION_LOST)
        log.warning("zookeeper session lost; failed %s pending watch(es)", len(pending))

    def _call(self, operation: str, path: str, func: Callable[[], T]) -> T:
        try:
            return func()
        except KazooNoNodeError as exc:
            raise NoNodeError(operation, path, "node does not exist") from exc
        except (SessionExpiredError, ConnectionClosedError) as exc:
            raise SessionLostError(operation, path, type(exc).__name__) from exc
        except (KazooException, ZookeeperError, KazooTimeoutError) as exc:
            raise CoordinationClientError(operation, path, str(exc) or type(exc).__name__) from exc

    def create_sequential_ephemeral(self, parent_path: str, prefix: str = "") -> str:
        target = join_path(parent_path, prefix)
        created = self._call(
            "create",
            parent_path,
            lambda: self._client.create(target, b"", ephemeral=True, sequence=True),
        )
        return node_basename(created)

    def list_children(self, parent_path: str) -> list[str]:
        return list(self._call("list_children", parent_path, lambda: self._client.get_children(parent_path)))

    def watch_existence(self, path: str) -> tuple[bool, WatchSignal]:
        signal = WatchSignal(path)

        def _watcher(event: WatchedEvent) -> None:
            with self._pending_lock:
                self._pending.discard(signal)
            signal.fire(_EVENT_KINDS.get(event.type, EVENT_CHANGED))

        with self._pending_lock:
            self._pending.add(signal)
        try:
            stat = self._call("watch_existence", path, lambda: self._client.exists(path, watch=_watcher))
        except CoordinationClientError:
            with self._pending_lock:
                self._pending.discard(signal)
            raise
        if stat is None:
            with self._pending_lock:
                self._pending.discard(signal)
        return stat is not None, signal

    def delete(self, path: str) -> None:
        self._call("delete", path, lambda: self._client.delete(path, version=-1))

    def ensure_path(self, path: str) -> None:
        self._call("ensure_path", path, lambda: self._client.ensure_path(path))
