#!/usr/bin/env python3
from __future__ import annotations

import json
import sys
from typing import Any

from coordlock.settings import get_settings


def main() -> None:
    settings = get_settings()
    missing: list[str] = []
    notices: list[str] = []

    if settings.coord_backend == "zookeeper":
        if not settings.zk_hosts.strip():
            missing.append("ZK_HOSTS")
        if bool(settings.zk_auth_scheme) != bool(settings.zk_auth_credential):
            missing.append("ZK_AUTH_SCHEME/ZK_AUTH_CREDENTIAL (set both or neither)")
    else:
        notices.append("COORD_BACKEND=memory (locks are process-local)")
    if not settings.lock_root.startswith("/"):
        missing.append("LOCK_ROOT (must be absolute)")

    payload: dict[str, Any] = {
        "coord_backend": settings.coord_backend,
        "zk_hosts": settings.zk_hosts,
        "lock_root": settings.lock_root,
        "ok": not missing,
        "missing": missing,
        "notices": notices,
    }

    sys.stdout.write(json.dumps(payload, indent=2) + "\n")
    if missing:
        sys.exit(1)


if __name__ == "__main__":
    main()
