"""Structured event log for coordlock processes.

Every event goes to ``runtime/logs/coordlock.log`` as one ``key=value`` line
and to ``coordlock.jsonl`` as one JSON object. Events about a particular lock
handle carry its root, candidate node and state so a queue can be traced
across processes by grepping for the node name.
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import TYPE_CHECKING, Any

from .metrics import METRICS

if TYPE_CHECKING:
    from .lock import DistributedLock

RUNTIME_ROOT = Path("runtime")
LOG_DIR = RUNTIME_ROOT / "logs"

TEXT_LOG = LOG_DIR / "coordlock.log"
JSON_LOG = LOG_DIR / "coordlock.jsonl"

LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 5
_LOG_LOCK = Lock()

_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR", "CRITICAL")


def ensure_runtime_dirs() -> None:
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def normalise_level(level: str) -> str:
    upper = level.upper()
    if upper == "WARNING":
        return "WARN"
    return upper if upper in _LEVELS else "INFO"


def _rotate(path: Path) -> None:
    try:
        if path.stat().st_size < LOG_MAX_BYTES:
            return
    except FileNotFoundError:
        return
    backups = [path.with_name(f"{path.name}.{idx}") for idx in range(1, LOG_BACKUP_COUNT + 1)]
    backups[-1].unlink(missing_ok=True)
    for older, newer in zip(reversed(backups[1:]), reversed(backups[:-1])):
        if newer.exists():
            newer.rename(older)
    path.rename(backups[0])


def lock_fields(lock: DistributedLock | None, lock_root: str | None) -> dict[str, Any]:
    """Describe the handle an event is about; ``lock_root`` covers handle-less events."""

    if lock is None:
        return {"lock_root": lock_root} if lock_root else {}
    fields: dict[str, Any] = {"lock_root": lock.root, "state": lock.state.value}
    if lock.node_name:
        fields["node"] = lock.node_name
    return fields


def log_event(
    svc: str,
    topic: str,
    message: str,
    *,
    level: str = "INFO",
    lock: DistributedLock | None = None,
    lock_root: str | None = None,
    **fields: Any,
) -> None:
    """Append one event to the plaintext and JSONL logs."""

    ensure_runtime_dirs()
    level_norm = normalise_level(level)
    event: dict[str, Any] = {
        "ts": datetime.now().isoformat(timespec="seconds"),
        "level": level_norm,
        "svc": svc,
        "topic": topic,
        "msg": message,
        "pid": os.getpid(),
        **lock_fields(lock, lock_root),
    }
    if fields:
        event["extra"] = fields

    head = [f"[{event['ts']}]"]
    head += [f"{key}={value}" for key, value in event.items() if key not in {"ts", "msg", "extra"}]
    head += [f"{key}={value}" for key, value in fields.items()]
    line = " ".join(head) + f' msg="{message}"\n'
    json_line = json.dumps(event, separators=(",", ":"), ensure_ascii=False, default=str) + "\n"

    with _LOG_LOCK:
        for path, text in ((TEXT_LOG, line), (JSON_LOG, json_line)):
            _rotate(path)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(text)

    if level_norm in {"ERROR", "CRITICAL"}:
        METRICS.record_error()
