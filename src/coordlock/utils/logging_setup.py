"""Central logging configuration for coordlock."""

from __future__ import annotations

import logging
from typing import Any

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: int | str | None = None, *, fmt: str = DEFAULT_FORMAT, **kwargs: Any) -> None:
    """Configure the root logger once, defaulting the level to ``LOG_LEVEL``."""

    root = logging.getLogger()
    if root.handlers:
        return
    if level is None:
        from coordlock.settings import get_settings

        level = get_settings().log_level.upper()
    logging.basicConfig(level=level, format=fmt, **kwargs)
    # kazoo is chatty about reconnect attempts at INFO.
    logging.getLogger("kazoo.client").setLevel(max(logging.getLogger().level, logging.WARNING))
