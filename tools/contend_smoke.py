"""Quick smoke-test: several contenders take turns on one lock."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
import time
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from coordlock.core.lock import DistributedLock
from coordlock.core.metrics import snapshot_kpis
from coordlock.session import open_session
from coordlock.settings import get_settings
from coordlock.utils.logging_setup import setup_logging

log = logging.getLogger("coordlock.smoke")


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--contenders", type=int, default=4)
    parser.add_argument("--hold", type=float, default=0.2)
    args = parser.parse_args()

    load_dotenv()
    setup_logging()
    settings = get_settings()
    order: list[int] = []
    order_lock = threading.Lock()

    with open_session(settings) as bootstrap:
        bootstrap.ensure_path(settings.lock_root)

    def contender(idx: int) -> None:
        with open_session(settings) as client:
            lock = DistributedLock(client, settings.lock_root, prefix=settings.lock_node_prefix)
            with lock:
                with order_lock:
                    order.append(idx)
                log.info("contender %s holds %s", idx, lock.node_name)
                time.sleep(args.hold)

    threads = [threading.Thread(target=contender, args=(idx,)) for idx in range(args.contenders)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    print(f"order={order}")
    print(f"kpi={snapshot_kpis()}")
    return 0 if len(order) == args.contenders else 1


if __name__ == "__main__":
    sys.exit(main())
