"""Connection registry: one entry per live participant connection."""
from __future__ import annotations

import time
from enum import Enum
from typing import Dict, Iterator, Optional

from .errors import DuplicateId, NotFound


class PairingState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"
    MATCHED = "matched"


class Participant:
    """Pairing state of a single connection.

    ``room_id`` is set exactly when ``state`` is ``MATCHED``.
    """

    def __init__(self, participant_id: str):
        self.id = participant_id
        self.state = PairingState.IDLE
        self.room_id: Optional[str] = None
        self.connected_at = time.time()

    def mark_idle(self) -> None:
        self.state = PairingState.IDLE
        self.room_id = None

    def mark_waiting(self) -> None:
        self.state = PairingState.WAITING
        self.room_id = None

    def mark_matched(self, room_id: str) -> None:
        self.state = PairingState.MATCHED
        self.room_id = room_id

    def __repr__(self) -> str:
        return f"Participant(id={self.id!r}, state={self.state.value}, room_id={self.room_id!r})"


class ConnectionRegistry:
    """Map of participant id -> ``Participant``.

    Not thread-safe on its own; ``RoomManager`` serialises access.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Participant] = {}

    def register(self, participant_id: str) -> Participant:
        if participant_id in self._entries:
            raise DuplicateId(participant_id)
        entry = Participant(participant_id)
        self._entries[participant_id] = entry
        return entry

    def lookup(self, participant_id: str) -> Participant:
        entry = self._entries.get(participant_id)
        if entry is None:
            raise NotFound(participant_id)
        return entry

    def find(self, participant_id: str) -> Optional[Participant]:
        return self._entries.get(participant_id)

    def remove(self, participant_id: str) -> Optional[Participant]:
        """Delete the entry and return it as last seen; absent ids are a no-op."""
        return self._entries.pop(participant_id, None)

    def count(self, state: Optional[PairingState] = None) -> int:
        if state is None:
            return len(self._entries)
        return sum(1 for p in self._entries.values() if p.state == state)

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Participant]:
        return iter(list(self._entries.values()))


__all__ = ["PairingState", "Participant", "ConnectionRegistry"]
