"""Open coordination sessions described by :class:`AppSettings`."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from kazoo.client import KazooClient
from kazoo.exceptions import KazooException
from kazoo.handlers.threading import KazooTimeoutError

from coordlock.coordination.memory import InMemoryCoordinationService, InMemorySession
from coordlock.coordination.zookeeper import ZooKeeperCoordinationClient
from coordlock.core.errors import CoordinationClientError
from coordlock.settings import AppSettings, get_settings

log = logging.getLogger("coordlock.session")

_MEMORY_SERVICE = InMemoryCoordinationService()


def memory_service() -> InMemoryCoordinationService:
    """Return the process-wide in-memory service used by the ``memory`` backend."""

    return _MEMORY_SERVICE


def build_kazoo_client(settings: AppSettings) -> KazooClient:
    kwargs: dict[str, Any] = {
        "hosts": settings.zk_hosts,
        "timeout": settings.zk_session_timeout_sec,
    }
    if settings.zk_auth_scheme and settings.zk_auth_credential:
        kwargs["auth_data"] = [(settings.zk_auth_scheme, settings.zk_auth_credential)]
    return KazooClient(**kwargs)


@contextmanager
def open_session(
    settings: AppSettings | None = None,
) -> Iterator[ZooKeeperCoordinationClient | InMemorySession]:
    """Yield a connected coordination client, closing its session on exit."""

    cfg = settings or get_settings()
    if cfg.coord_backend == "memory":
        session = memory_service().session()
        try:
            yield session
        finally:
            session.close()
        return

    client = build_kazoo_client(cfg)
    try:
        client.start(timeout=cfg.zk_connect_timeout_sec)
    except (KazooTimeoutError, KazooException) as exc:
        client.close()
        raise CoordinationClientError("connect", cfg.zk_hosts, f"could not start session: {exc}") from exc
    log.info("zookeeper session established hosts=%s", cfg.zk_hosts)
    try:
        yield ZooKeeperCoordinationClient(client)
    finally:
        client.stop()
        client.close()
        log.info("zookeeper session closed hosts=%s", cfg.zk_hosts)
