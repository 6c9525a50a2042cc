"""Coordination client surface consumed by the distributed lock."""

from __future__ import annotations

import re
import threading
from typing import Iterable, Protocol

EVENT_DELETED = "deleted"
EVENT_CHANGED = "changed"
EVENT_CREATED = "created"
EVENT_SESSION_LOST = "session_lost"

SEQUENCE_WIDTH = 10
_SEQUENCE_RE = re.compile(r"(\d+)$")


class WatchSignal:
    """One-shot notification returned alongside an existence check.

    The first ``fire`` wins; later calls are ignored so a signal reports exactly
    one event for its lifetime.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._event = threading.Event()
        self._guard = threading.Lock()
        self._kind: str | None = None

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    @property
    def kind(self) -> str | None:
        """Event kind that fired the signal, ``None`` while pending."""

        return self._kind

    @property
    def session_lost(self) -> bool:
        return self._kind == EVENT_SESSION_LOST

    def fire(self, kind: str) -> bool:
        """Deliver ``kind`` to the waiter returning ``False`` if already fired."""

        with self._guard:
            if self._event.is_set():
                return False
            self._kind = kind
            self._event.set()
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the signal fires or ``timeout`` elapses."""

        return self._event.wait(timeout)

    def __repr__(self) -> str:
        state = self._kind or "pending"
        return f"WatchSignal(path={self.path!r}, state={state})"


class CoordinationClient(Protocol):
    """Protocol describing the four operations the lock relies on."""

    def create_sequential_ephemeral(self, parent_path: str, prefix: str = "") -> str:
        """Create ``parent_path/prefixNNNNNNNNNN`` returning the node name only."""
        ...

    def list_children(self, parent_path: str) -> list[str]:
        ...

    def watch_existence(self, path: str) -> tuple[bool, WatchSignal]:
        ...

    def delete(self, path: str) -> None:
        ...


def join_path(parent: str, name: str) -> str:
    if parent.endswith("/"):
        return f"{parent}{name}"
    return f"{parent}/{name}"


def node_basename(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1]


def sequence_of(name: str) -> int | None:
    """Return the trailing sequence number of ``name`` if it carries one."""

    match = _SEQUENCE_RE.search(name)
    if match is None:
        return None
    return int(match.group(1))


def format_sequence(prefix: str, sequence: int) -> str:
    return f"{prefix}{sequence:0{SEQUENCE_WIDTH}d}"


def sort_by_sequence(names: Iterable[str]) -> list[str]:
    """Order sequential node names ascending, dropping names without a suffix."""

    ranked = [(seq, name) for name in names if (seq := sequence_of(name)) is not None]
    ranked.sort()
    return [name for _, name in ranked]
