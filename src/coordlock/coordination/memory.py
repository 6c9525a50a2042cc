"""Process-local coordination service with ZooKeeper-style node semantics.

Nodes live in a single dictionary keyed by absolute path. Sequential children
draw their suffix from a per-parent counter that never goes backwards, and
ephemeral nodes are owned by the session that created them: closing or
expiring that session removes them and fires the watches registered on them.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field

from coordlock.core.errors import CoordinationClientError, NoNodeError, SessionLostError

from .base import (
    EVENT_DELETED,
    EVENT_SESSION_LOST,
    WatchSignal,
    format_sequence,
    join_path,
    node_basename,
)

log = logging.getLogger("coordlock.coordination.memory")


def _parent_of(path: str) -> str:
    parent = path.rstrip("/").rsplit("/", 1)[0]
    return parent or "/"


def _normalise(path: str) -> str:
    if not path.startswith("/"):
        raise ValueError(f"path must be absolute: {path!r}")
    if path != "/" and path.endswith("/"):
        return path.rstrip("/")
    return path


@dataclass(slots=True)
class _Node:
    owner: int | None = None
    children: set[str] = field(default_factory=set)


class InMemoryCoordinationService:
    """Thread-safe node tree shared by any number of sessions."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._nodes: dict[str, _Node] = {"/": _Node()}
        self._counters: dict[str, int] = {}
        self._watches: dict[str, list[tuple[int, WatchSignal]]] = {}
        self._sessions: dict[int, InMemorySession] = {}
        self._ids = itertools.count(1)

    def session(self) -> InMemorySession:
        """Open a new session bound to this service."""

        with self._lock:
            session_id = next(self._ids)
            session = InMemorySession(self, session_id)
            self._sessions[session_id] = session
        log.debug("opened session id=%s", session_id)
        return session

    def ensure_path(self, path: str) -> None:
        """Create ``path`` and any missing parents as persistent nodes."""

        path = _normalise(path)
        with self._lock:
            parts = [part for part in path.split("/") if part]
            current = "/"
            for part in parts:
                child = join_path(current, part)
                if child not in self._nodes:
                    self._nodes[child] = _Node()
                    self._nodes[current].children.add(part)
                current = child

    def exists(self, path: str) -> bool:
        with self._lock:
            return _normalise(path) in self._nodes

    def _create(self, parent_path: str, prefix: str, owner: int) -> str:
        parent_path = _normalise(parent_path)
        with self._lock:
            parent = self._nodes.get(parent_path)
            if parent is None:
                raise NoNodeError("create", parent_path, "parent node does not exist")
            sequence = self._counters.get(parent_path, 0)
            self._counters[parent_path] = sequence + 1
            name = format_sequence(prefix, sequence)
            path = join_path(parent_path, name)
            self._nodes[path] = _Node(owner=owner)
            parent.children.add(name)
        return name

    def _children(self, parent_path: str) -> list[str]:
        parent_path = _normalise(parent_path)
        with self._lock:
            parent = self._nodes.get(parent_path)
            if parent is None:
                raise NoNodeError("list_children", parent_path, "node does not exist")
            return sorted(parent.children)

    def _watch(self, path: str, session_id: int) -> tuple[bool, WatchSignal]:
        path = _normalise(path)
        signal = WatchSignal(path)
        with self._lock:
            exists = path in self._nodes
            # Sequential names are never reused, so a missing node stays missing.
            if exists:
                self._watches.setdefault(path, []).append((session_id, signal))
        return exists, signal

    def _delete(self, path: str) -> None:
        path = _normalise(path)
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                raise NoNodeError("delete", path, "node does not exist")
            if node.children:
                raise CoordinationClientError("delete", path, "node has children")
            self._remove(path)

    def _remove(self, path: str) -> None:
        del self._nodes[path]
        parent = self._nodes.get(_parent_of(path))
        if parent is not None:
            parent.children.discard(node_basename(path))
        self._fire(path, EVENT_DELETED)

    def _fire(self, path: str, kind: str) -> None:
        for _, signal in self._watches.pop(path, []):
            signal.fire(kind)

    def _end_session(self, session_id: int) -> int:
        """Drop the session's ephemeral nodes and fail its pending watches."""

        with self._lock:
            self._sessions.pop(session_id, None)
            owned = [path for path, node in self._nodes.items() if node.owner == session_id]
            for path in owned:
                self._remove(path)
            for path, entries in list(self._watches.items()):
                remaining = []
                for owner, signal in entries:
                    if owner == session_id:
                        signal.fire(EVENT_SESSION_LOST)
                    else:
                        remaining.append((owner, signal))
                if remaining:
                    self._watches[path] = remaining
                else:
                    del self._watches[path]
        return len(owned)


class InMemorySession:
    """Coordination client bound to one session of an in-memory service."""

    def __init__(self, service: InMemoryCoordinationService, session_id: int) -> None:
        self._service = service
        self.session_id = session_id
        self._closed = False
        self._reason = "session closed"

    @property
    def closed(self) -> bool:
        return self._closed

    def _check(self, operation: str, path: str) -> None:
        if self._closed:
            raise SessionLostError(operation, path, self._reason)

    def create_sequential_ephemeral(self, parent_path: str, prefix: str = "") -> str:
        self._check("create", parent_path)
        return self._service._create(parent_path, prefix, self.session_id)

    def list_children(self, parent_path: str) -> list[str]:
        self._check("list_children", parent_path)
        return self._service._children(parent_path)

    def watch_existence(self, path: str) -> tuple[bool, WatchSignal]:
        self._check("watch_existence", path)
        return self._service._watch(path, self.session_id)

    def delete(self, path: str) -> None:
        self._check("delete", path)
        self._service._delete(path)

    def ensure_path(self, path: str) -> None:
        self._check("ensure_path", path)
        self._service.ensure_path(path)

    def close(self) -> None:
        """End the session normally, removing its ephemeral nodes."""

        self._finish("session closed")

    def expire(self) -> None:
        """Simulate the service expiring this session."""

        self._finish("session expired")

    def _finish(self, reason: str) -> None:
        if self._closed:
            return
        self._closed = True
        self._reason = reason
        removed = self._service._end_session(self.session_id)
        log.debug("%s id=%s ephemeral_removed=%s", reason, self.session_id, removed)

    def __enter__(self) -> InMemorySession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
