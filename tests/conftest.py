"""Shared fixtures: a fresh room manager, a fake peer transport, an app client."""
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from pairchat.errors import TransportError
from pairchat.hub import Switchboard
from pairchat.manager import RoomManager
from pairchat.registry import PairingState


class FakeTransport:
    """In-memory ``PeerTransport`` recording every call."""

    def __init__(self, room_id: str = "room_test"):
        self.room_id = room_id
        self.calls: List[str] = []
        self.local_description: Optional[Dict[str, Any]] = None
        self.remote_description: Optional[Dict[str, Any]] = None
        self.remote_candidates: List[Any] = []
        self.closed = False
        self.fail_on: set = set()
        self._candidate_callback = None
        self._state_callback = None

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise TransportError(f"{name} failed")

    async def create_offer(self) -> Dict[str, Any]:
        self._check("create_offer")
        return {"type": "offer", "sdp": f"v=0 offer for {self.room_id}"}

    async def create_answer(self) -> Dict[str, Any]:
        self._check("create_answer")
        return {"type": "answer", "sdp": f"v=0 answer for {self.room_id}"}

    async def set_local_description(self, description: Dict[str, Any]) -> None:
        self._check("set_local_description")
        self.local_description = description

    async def set_remote_description(self, description: Dict[str, Any]) -> None:
        self._check("set_remote_description")
        self.remote_description = description

    async def add_remote_candidate(self, candidate: Any) -> None:
        self._check("add_remote_candidate")
        self.remote_candidates.append(candidate)

    def on_local_candidate(self, callback) -> None:
        self._candidate_callback = callback

    def on_connection_state_change(self, callback) -> None:
        self._state_callback = callback

    async def close(self) -> None:
        self.calls.append("close")
        self.closed = True

    # Test helpers: simulate events raised by the transport.
    def discover(self, candidate: Dict[str, Any]) -> None:
        self._candidate_callback(candidate)

    def change_state(self, state: str) -> None:
        self._state_callback(state)


class TransportFactoryStub:
    """Factory handing out ``FakeTransport`` instances and remembering them."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.created: List[FakeTransport] = []

    def __call__(self, room_id: str) -> FakeTransport:
        if self.fail:
            raise TransportError("camera unavailable")
        transport = FakeTransport(room_id)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


def assert_consistent(manager: RoomManager) -> None:
    """Registry, queue and room table agree with each other."""
    matched = [p for p in manager.registry if p.state == PairingState.MATCHED]
    seen = set()
    for room in manager.rooms.values():
        a, b = room.members
        assert a != b
        for member in (a, b):
            assert member not in seen
            seen.add(member)
            entry = manager.registry.find(member)
            assert entry is not None
            assert entry.state == PairingState.MATCHED
            assert entry.room_id == room.room_id
    assert seen == {p.id for p in matched}

    queued = manager.queue.snapshot()
    assert len(queued) == len(set(queued))
    waiting = {p.id for p in manager.registry if p.state == PairingState.WAITING}
    assert set(queued) == waiting
    for entry in manager.registry:
        assert (entry.room_id is not None) == (entry.state == PairingState.MATCHED)


@pytest.fixture
def manager():
    return RoomManager()


@pytest.fixture
def transports():
    return TransportFactoryStub()


@pytest.fixture
def switchboard():
    return Switchboard()


@pytest.fixture
def client(switchboard):
    from pairchat.app import app
    from pairchat.state import get_switchboard

    app.dependency_overrides[get_switchboard] = lambda: switchboard
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
