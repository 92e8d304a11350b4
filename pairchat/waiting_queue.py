"""FIFO queue of participants waiting for a partner."""
from __future__ import annotations

from collections import OrderedDict
from typing import List, Optional


class WaitingQueue:
    """Ordered set of participant ids: oldest waiter first, each id at most once."""

    def __init__(self) -> None:
        # Insertion order of an OrderedDict is the queue order; keys give O(1) discard.
        self._ids: "OrderedDict[str, None]" = OrderedDict()

    def push(self, participant_id: str) -> bool:
        """Append to the tail. Returns False if the id was already queued."""
        if participant_id in self._ids:
            return False
        self._ids[participant_id] = None
        return True

    def pop(self) -> Optional[str]:
        """Remove and return the head, or None when empty."""
        if not self._ids:
            return None
        participant_id, _ = self._ids.popitem(last=False)
        return participant_id

    def discard(self, participant_id: str) -> bool:
        if participant_id in self._ids:
            del self._ids[participant_id]
            return True
        return False

    def position(self, participant_id: str) -> Optional[int]:
        for idx, queued in enumerate(self._ids):
            if queued == participant_id:
                return idx
        return None

    def snapshot(self) -> List[str]:
        return list(self._ids)

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __bool__(self) -> bool:
        return bool(self._ids)


__all__ = ["WaitingQueue"]
