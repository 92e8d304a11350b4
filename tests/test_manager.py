"""Room manager: matching, teardown and the invariants tying them together."""
import random
import threading

import pytest

from conftest import assert_consistent
from pairchat.errors import NotFound
from pairchat.manager import RoomManager
from pairchat.registry import PairingState
from pairchat.schemas import Matched, PartnerLeft, Waiting


def connect_all(manager: RoomManager, *ids: str) -> None:
    for pid in ids:
        manager.connect(pid)


def messages_for(deliveries, recipient):
    return [d.message for d in deliveries if d.recipient == recipient]


# =============================================================================
# Joining
# =============================================================================

class TestRequestJoin:
    def test_first_joiner_waits(self, manager):
        connect_all(manager, "x")

        deliveries = manager.request_join("x")

        assert [d.recipient for d in deliveries] == ["x"]
        assert isinstance(deliveries[0].message, Waiting)
        assert manager.state_of("x") == PairingState.WAITING
        assert manager.queue.snapshot() == ["x"]

    def test_second_joiner_is_matched(self, manager):
        connect_all(manager, "x", "y")
        manager.request_join("x")

        deliveries = manager.request_join("y")

        to_x = messages_for(deliveries, "x")
        to_y = messages_for(deliveries, "y")
        assert len(to_x) == 1 and isinstance(to_x[0], Matched)
        assert len(to_y) == 1 and isinstance(to_y[0], Matched)
        assert to_x[0].partner_id == "y"
        assert to_y[0].partner_id == "x"
        assert to_x[0].room_id == to_y[0].room_id
        assert len(manager.queue) == 0
        assert manager.room_of("x") is manager.room_of("y")
        assert_consistent(manager)

    def test_longest_waiter_is_matched_first(self, manager):
        connect_all(manager, "a", "b", "c")
        manager.request_join("a")
        manager.request_join("b")  # matched with a

        connect_all(manager, "d", "e")
        manager.request_join("c")
        manager.request_join("d")  # matched with c
        manager.request_join("e")

        assert manager.room_of("a").other("a") == "b"
        assert manager.room_of("c").other("c") == "d"
        assert manager.queue.snapshot() == ["e"]

    def test_fifo_with_many_waiters(self, manager):
        # Waiters only accumulate if they never meet; simulate by enqueueing directly.
        ids = [f"w{i:02d}" for i in range(5)]
        connect_all(manager, *ids)
        for pid in ids:
            manager.registry.lookup(pid).mark_waiting()
            manager.queue.push(pid)
        connect_all(manager, "late")

        manager.request_join("late")

        assert manager.room_of("late").other("late") == "w00"
        assert manager.queue.snapshot() == ids[1:]

    def test_repeated_join_while_waiting_keeps_position(self, manager):
        connect_all(manager, "x")
        manager.request_join("x")

        deliveries = manager.request_join("x")

        assert isinstance(deliveries[0].message, Waiting)
        assert manager.queue.snapshot() == ["x"]

    def test_rejoin_while_matched_closes_stale_room(self, manager):
        connect_all(manager, "x", "y")
        manager.request_join("x")
        manager.request_join("y")
        old_room = manager.room_of("x").room_id

        deliveries = manager.request_join("x")

        assert isinstance(messages_for(deliveries, "y")[0], PartnerLeft)
        assert isinstance(messages_for(deliveries, "x")[0], Waiting)
        assert old_room not in manager.rooms
        assert manager.state_of("y") == PairingState.IDLE
        assert_consistent(manager)

    def test_unknown_participant(self, manager):
        with pytest.raises(NotFound):
            manager.request_join("nobody")


# =============================================================================
# Leaving
# =============================================================================

class TestTeardown:
    def _matched_pair(self, manager):
        connect_all(manager, "x", "y")
        manager.request_join("x")
        manager.request_join("y")

    def test_next_partner_requeues_and_notifies(self, manager):
        self._matched_pair(manager)

        deliveries = manager.next_partner("x")

        assert [type(m) for m in messages_for(deliveries, "y")] == [PartnerLeft]
        assert [type(m) for m in messages_for(deliveries, "x")] == [Waiting]
        assert not manager.rooms
        assert manager.queue.snapshot() == ["x"]
        assert manager.state_of("y") == PairingState.IDLE
        assert_consistent(manager)

    def test_next_partner_matches_existing_waiter(self, manager):
        self._matched_pair(manager)
        connect_all(manager, "z")
        manager.request_join("z")

        deliveries = manager.next_partner("x")

        assert isinstance(messages_for(deliveries, "y")[0], PartnerLeft)
        assert isinstance(messages_for(deliveries, "x")[0], Matched)
        assert manager.room_of("x").other("x") == "z"
        assert_consistent(manager)

    def test_next_partner_when_idle_joins(self, manager):
        connect_all(manager, "x")

        deliveries = manager.next_partner("x")

        assert isinstance(deliveries[0].message, Waiting)
        assert manager.state_of("x") == PairingState.WAITING

    def test_leave_makes_both_idle(self, manager):
        self._matched_pair(manager)

        deliveries = manager.leave("x")

        assert [d.recipient for d in deliveries] == ["y"]
        assert manager.state_of("x") == PairingState.IDLE
        assert manager.state_of("y") == PairingState.IDLE
        assert "x" in manager.registry
        assert_consistent(manager)

    def test_leave_while_waiting_removes_from_queue(self, manager):
        connect_all(manager, "x")
        manager.request_join("x")

        assert manager.leave("x") == []
        assert len(manager.queue) == 0

    def test_leave_room_twice_notifies_once(self, manager):
        self._matched_pair(manager)

        first = manager.leave_room("x")
        second = manager.leave_room("x")

        assert len(first) == 1 and isinstance(first[0].message, PartnerLeft)
        assert second == []

    def test_disconnect_twice_notifies_once(self, manager):
        self._matched_pair(manager)

        first = manager.disconnect("x")
        second = manager.disconnect("x")

        assert [d.recipient for d in first] == ["y"]
        assert second == []
        assert "x" not in manager.registry

    def test_disconnect_racing_next_partner(self, manager):
        self._matched_pair(manager)

        manager.next_partner("x")
        deliveries = manager.disconnect("x")

        assert deliveries == []
        assert len(manager.queue) == 0
        assert_consistent(manager)

    def test_disconnect_while_waiting_is_never_matched(self, manager):
        connect_all(manager, "x", "y", "z")
        manager.request_join("x")
        manager.disconnect("x")

        manager.request_join("y")
        deliveries = manager.request_join("z")

        assert manager.room_of("y").other("y") == "z"
        assert all(d.recipient != "x" for d in deliveries)
        assert_consistent(manager)


# =============================================================================
# Properties
# =============================================================================

class TestInvariants:
    def test_random_operation_sequences(self, manager):
        ids = [f"p{i}" for i in range(12)]
        connected = set()
        for _ in range(2000):
            pid = random.choice(ids)
            if pid not in connected:
                manager.connect(pid)
                connected.add(pid)
                continue
            op = random.choice(["join", "join", "next", "leave", "disconnect"])
            if op == "join":
                deliveries = manager.request_join(pid)
            elif op == "next":
                deliveries = manager.next_partner(pid)
            elif op == "leave":
                deliveries = manager.leave(pid)
            else:
                deliveries = manager.disconnect(pid)
                connected.discard(pid)
            for d in deliveries:
                assert d.recipient in connected
                if isinstance(d.message, PartnerLeft):
                    assert manager.state_of(d.recipient) == PairingState.IDLE
            assert_consistent(manager)

    def test_snapshot_counts(self, manager):
        connect_all(manager, "a", "b", "c")
        manager.request_join("a")
        manager.request_join("b")
        manager.request_join("c")

        snap = manager.snapshot()

        assert snap.connected_count == 3
        assert snap.waiting_count == 1
        assert snap.active_room_count == 1
        assert snap.total_matches == 1
        assert snap.rooms[0].members == ["a", "b"]
        assert snap.rooms[0].initiator == "a"

    def test_concurrent_joins_from_threads(self, manager):
        ids = [f"t{i:03d}" for i in range(200)]
        connect_all(manager, *ids)
        barrier = threading.Barrier(len(ids))

        def join(pid):
            barrier.wait()
            manager.request_join(pid)

        threads = [threading.Thread(target=join, args=(pid,)) for pid in ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(manager.rooms) == 100
        assert len(manager.queue) == 0
        assert_consistent(manager)
