"""Unit tests for the registry, the waiting queue, rooms and the tie-break."""
import random
import uuid

import pytest

from pairchat.errors import DuplicateId, NotFound
from pairchat.registry import ConnectionRegistry, PairingState
from pairchat.room import Room
from pairchat.tiebreak import initiator_of, is_initiator
from pairchat.waiting_queue import WaitingQueue


def random_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# ConnectionRegistry
# =============================================================================

class TestConnectionRegistry:
    def test_register_creates_idle_entry(self):
        registry = ConnectionRegistry()
        entry = registry.register("p1")

        assert entry.id == "p1"
        assert entry.state == PairingState.IDLE
        assert entry.room_id is None
        assert "p1" in registry

    def test_register_twice_fails(self):
        registry = ConnectionRegistry()
        registry.register("p1")

        with pytest.raises(DuplicateId):
            registry.register("p1")

    def test_lookup_missing_raises(self):
        registry = ConnectionRegistry()

        with pytest.raises(NotFound):
            registry.lookup("ghost")
        assert registry.find("ghost") is None

    def test_remove_returns_last_state(self):
        registry = ConnectionRegistry()
        registry.register("p1").mark_matched("room_1")

        removed = registry.remove("p1")

        assert removed.state == PairingState.MATCHED
        assert removed.room_id == "room_1"
        assert "p1" not in registry

    def test_remove_is_idempotent(self):
        registry = ConnectionRegistry()
        registry.register("p1")

        registry.remove("p1")
        assert registry.remove("p1") is None
        assert registry.remove("never-seen") is None

    def test_count_by_state(self):
        registry = ConnectionRegistry()
        registry.register("a").mark_waiting()
        registry.register("b").mark_matched("r")
        registry.register("c")

        assert registry.count() == 3
        assert registry.count(PairingState.WAITING) == 1
        assert registry.count(PairingState.MATCHED) == 1
        assert registry.count(PairingState.IDLE) == 1


# =============================================================================
# WaitingQueue
# =============================================================================

class TestWaitingQueue:
    def test_fifo_order(self):
        queue = WaitingQueue()
        ids = [random_id() for _ in range(10)]
        for pid in ids:
            queue.push(pid)

        popped = [queue.pop() for _ in range(10)]

        assert popped == ids
        assert queue.pop() is None

    def test_push_duplicate_is_rejected(self):
        queue = WaitingQueue()

        assert queue.push("a") is True
        assert queue.push("b") is True
        assert queue.push("a") is False
        assert queue.snapshot() == ["a", "b"]

    def test_discard_keeps_order_of_others(self):
        queue = WaitingQueue()
        for pid in "abcd":
            queue.push(pid)

        assert queue.discard("b") is True
        assert queue.discard("b") is False
        assert queue.snapshot() == ["a", "c", "d"]
        assert queue.position("d") == 2
        assert queue.position("b") is None

    def test_random_operations_never_duplicate(self):
        queue = WaitingQueue()
        pool = [random_id() for _ in range(8)]
        for _ in range(500):
            op = random.choice(["push", "pop", "discard"])
            if op == "push":
                queue.push(random.choice(pool))
            elif op == "pop":
                queue.pop()
            else:
                queue.discard(random.choice(pool))
            snapshot = queue.snapshot()
            assert len(snapshot) == len(set(snapshot))
            assert len(queue) == len(snapshot)


# =============================================================================
# Room and tie-break
# =============================================================================

class TestRoom:
    def test_room_ids_are_unique(self):
        ids = {Room("a", "b").room_id for _ in range(1000)}
        assert len(ids) == 1000

    def test_other_member(self):
        room = Room("a", "b")

        assert room.other("a") == "b"
        assert room.other("b") == "a"
        with pytest.raises(KeyError):
            room.other("c")

    def test_members_are_ordered(self):
        room = Room("zed", "amy")
        assert room.members == ("amy", "zed")
        assert room.initiator == "amy"

    def test_self_pairing_is_rejected(self):
        with pytest.raises(AssertionError):
            Room("a", "a")


class TestTieBreak:
    def test_lesser_id_initiates(self):
        assert initiator_of("abc", "abd") == "abc"
        assert initiator_of("abd", "abc") == "abc"

    def test_both_sides_agree(self):
        for _ in range(200):
            a, b = random_id(), random_id()
            assert is_initiator(a, b) != is_initiator(b, a)
            assert initiator_of(a, b) == initiator_of(b, a)

    def test_self_comparison_asserts(self):
        with pytest.raises(AssertionError):
            initiator_of("same", "same")
