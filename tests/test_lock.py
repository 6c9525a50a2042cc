from __future__ import annotations

import threading

import pytest

from coordlock.coordination.base import EVENT_CHANGED
from coordlock.coordination.memory import InMemoryCoordinationService
from coordlock.core.errors import (
    AlreadyHeldError,
    AmbiguousStateError,
    CoordinationClientError,
    LockFaultedError,
    NotHeldError,
    SessionLostError,
    StateConsistencyError,
)
from coordlock.core.lock import DistributedLock, LockState
from coordlock.core.metrics import KPIStore
from tests.fakes.fake_coordination import RecordingClient, ScriptedCoordinationClient

ROOT = "/locks/orders"


@pytest.fixture()
def service() -> InMemoryCoordinationService:
    svc = InMemoryCoordinationService()
    svc.ensure_path(ROOT)
    return svc


def _run_in_thread(target) -> tuple[threading.Thread, dict]:
    outcome: dict = {}

    def _runner() -> None:
        try:
            target()
        except Exception as exc:  # surfaced through ``outcome``
            outcome["error"] = exc
        else:
            outcome["ok"] = True

    thread = threading.Thread(target=_runner, daemon=True)
    thread.start()
    return thread, outcome


def test_sole_contender_acquires_without_watch(service) -> None:
    client = RecordingClient(service.session())
    lock = DistributedLock(client, ROOT, metrics=KPIStore())

    lock.acquire()

    assert lock.held is True
    assert lock.state is LockState.HELD
    assert lock.node_name == "lock-0000000000"
    assert client.watched == []


def test_waiter_watches_immediate_predecessor_not_holder() -> None:
    client = ScriptedCoordinationClient(
        created="lock-0000000004",
        listings=[
            ["lock-0000000003", "lock-0000000004", "lock-0000000001"],
            ["lock-0000000001", "lock-0000000004"],
            ["lock-0000000004"],
        ],
        watches=[True, True],
    )
    lock = DistributedLock(client, ROOT, metrics=KPIStore())

    lock.acquire()

    assert client.watched == [f"{ROOT}/lock-0000000003", f"{ROOT}/lock-0000000001"]
    assert client.calls[0] == ("create", f"{ROOT}/lock-")
    assert lock.held is True


def test_predecessor_deleted_wakes_only_its_watcher(service) -> None:
    sessions = [service.session() for _ in range(4)]
    names = [session.create_sequential_ephemeral(ROOT, "lock-") for session in sessions]
    sessions[0].delete(f"{ROOT}/{names[0]}")
    sessions[2].delete(f"{ROOT}/{names[2]}")
    assert service.session().list_children(ROOT) == ["lock-0000000001", "lock-0000000003"]

    observer = RecordingClient(service.session())
    _, holder_signal = observer.watch_existence(f"{ROOT}/lock-0000000001")

    contender = RecordingClient(service.session())
    lock = DistributedLock(contender, ROOT, metrics=KPIStore())
    thread, outcome = _run_in_thread(lock.acquire)

    assert contender.wait_for_watches(1)
    assert lock.node_name == "lock-0000000004"
    assert contender.watched == [f"{ROOT}/lock-0000000003"]

    sessions[3].delete(f"{ROOT}/lock-0000000003")
    assert contender.wait_for_watches(2)
    assert contender.signals[0].fired is True
    assert contender.watched[1] == f"{ROOT}/lock-0000000001"
    assert holder_signal.fired is False

    sessions[1].delete(f"{ROOT}/lock-0000000001")
    thread.join(timeout=5)
    assert outcome == {"ok": True}
    assert lock.held is True
    assert holder_signal.fired is True


def test_missing_predecessor_relists_without_waiting() -> None:
    metrics = KPIStore()
    client = ScriptedCoordinationClient(
        created="lock-0000000002",
        listings=[["lock-0000000001", "lock-0000000002"], ["lock-0000000002"]],
        watches=[False],
    )
    lock = DistributedLock(client, ROOT, metrics=metrics)

    lock.acquire()

    assert lock.held is True
    assert client.watched == [f"{ROOT}/lock-0000000001"]
    assert metrics.get_counter("watch_skips_total") == 1
    assert metrics.get_counter("wakeups_total") == 0


def test_changed_predecessor_triggers_relist() -> None:
    metrics = KPIStore()
    client = ScriptedCoordinationClient(
        created="lock-0000000002",
        listings=[
            ["lock-0000000001", "lock-0000000002"],
            ["lock-0000000001", "lock-0000000002"],
            ["lock-0000000002"],
        ],
        watches=[True, True],
        fire_kind=EVENT_CHANGED,
    )
    lock = DistributedLock(client, ROOT, metrics=metrics)

    lock.acquire()

    assert client.watched == [f"{ROOT}/lock-0000000001"] * 2
    assert metrics.get_counter("wakeups_total") == 2


def test_empty_listing_faults_handle() -> None:
    client = ScriptedCoordinationClient(created="lock-0000000000", listings=[[]])
    lock = DistributedLock(client, ROOT, metrics=KPIStore())

    with pytest.raises(StateConsistencyError):
        lock.acquire()

    assert lock.state is LockState.FAULTED
    assert lock.held is False
    with pytest.raises(LockFaultedError):
        lock.acquire()
    with pytest.raises(LockFaultedError):
        lock.release()


def test_own_node_missing_from_listing_faults_handle() -> None:
    client = ScriptedCoordinationClient(created="lock-0000000005", listings=[["lock-0000000001"]])
    lock = DistributedLock(client, ROOT, metrics=KPIStore())

    with pytest.raises(StateConsistencyError):
        lock.acquire()
    assert lock.state is LockState.FAULTED


def test_client_failure_leaves_candidate_and_rejects_retry(service) -> None:
    client = RecordingClient(service.session())
    lock = DistributedLock(client, ROOT, metrics=KPIStore())
    client.fail_next("list_children")

    with pytest.raises(CoordinationClientError):
        lock.acquire()

    stale = lock.node_path
    assert stale == f"{ROOT}/lock-0000000000"
    assert lock.held is False
    assert service.exists(stale)

    with pytest.raises(AmbiguousStateError):
        lock.acquire()
    assert service.session().list_children(ROOT) == ["lock-0000000000"]

    lock.release()
    assert not service.exists(stale)

    lock.acquire()
    assert lock.node_name == "lock-0000000001"


def test_create_failure_returns_to_idle(service) -> None:
    client = RecordingClient(service.session())
    lock = DistributedLock(client, ROOT, metrics=KPIStore())
    client.fail_next("create")

    with pytest.raises(CoordinationClientError):
        lock.acquire()

    assert lock.state is LockState.IDLE
    assert lock.node_name is None
    lock.acquire()
    assert lock.held is True


def test_release_failure_keeps_state(service) -> None:
    client = RecordingClient(service.session())
    lock = DistributedLock(client, ROOT, metrics=KPIStore())
    lock.acquire()
    path = lock.node_path
    client.fail_next("delete")

    with pytest.raises(CoordinationClientError):
        lock.release()

    assert lock.held is True
    assert lock.node_path == path
    assert service.exists(path)

    lock.release()
    assert lock.held is False
    assert lock.node_name is None


def test_release_then_acquire_uses_new_larger_sequence(service) -> None:
    metrics = KPIStore()
    lock = DistributedLock(service.session(), ROOT, metrics=metrics)

    lock.acquire()
    first = lock.node_name
    lock.release()
    assert lock.state is LockState.IDLE
    lock.acquire()

    assert first == "lock-0000000000"
    assert lock.node_name == "lock-0000000001"
    assert metrics.get_counter("acquired_total") == 2
    assert metrics.get_counter("released_total") == 1


def test_misuse_raises_distinct_errors(service) -> None:
    lock = DistributedLock(service.session(), ROOT, metrics=KPIStore())

    with pytest.raises(NotHeldError):
        lock.release()

    lock.acquire()
    with pytest.raises(AlreadyHeldError):
        lock.acquire()


def test_relative_root_is_rejected(service) -> None:
    with pytest.raises(ValueError):
        DistributedLock(service.session(), "locks/orders")


def test_context_manager_releases(service) -> None:
    lock = DistributedLock(service.session(), ROOT, metrics=KPIStore())

    with lock as held:
        assert held.held is True
        assert service.session().list_children(ROOT) == [lock.node_name]

    assert lock.held is False
    assert service.session().list_children(ROOT) == []


def test_contenders_lists_queue_in_order(service) -> None:
    first = DistributedLock(service.session(), ROOT, metrics=KPIStore())
    first.acquire()
    service.session().create_sequential_ephemeral(ROOT, "lock-")

    assert first.contenders() == ["lock-0000000000", "lock-0000000001"]


def test_session_loss_on_release_faults_handle(service) -> None:
    session = service.session()
    lock = DistributedLock(session, ROOT, metrics=KPIStore())
    lock.acquire()

    session.expire()
    with pytest.raises(SessionLostError):
        lock.release()

    assert lock.state is LockState.FAULTED
    assert lock.held is False
    assert service.session().list_children(ROOT) == []
    with pytest.raises(LockFaultedError):
        lock.acquire()


def test_unexpected_create_failure_returns_to_idle(service) -> None:
    client = RecordingClient(service.session())
    lock = DistributedLock(client, ROOT, metrics=KPIStore())
    client.fail_next("create", OSError("socket closed"))

    with pytest.raises(OSError):
        lock.acquire()

    assert lock.state is LockState.IDLE
    lock.acquire()
    assert lock.held is True
