from __future__ import annotations

import time
import uuid
from typing import Optional, Tuple

from .tiebreak import initiator_of


def new_room_id() -> str:
    return f"room_{uuid.uuid4().hex}"


class Room:
    """One active pairing of exactly two distinct participants."""

    def __init__(self, member_a: str, member_b: str, room_id: Optional[str] = None):
        if member_a == member_b:
            raise AssertionError(f"Room members must be distinct, got {member_a} twice")
        self.room_id = room_id or new_room_id()
        self.member_a = member_a
        self.member_b = member_b
        self.created_at = time.time()

    @property
    def members(self) -> Tuple[str, str]:
        """Both members, lesser id first."""
        return (self.member_a, self.member_b) if self.member_a < self.member_b else (self.member_b, self.member_a)

    @property
    def initiator(self) -> str:
        return initiator_of(self.member_a, self.member_b)

    def has_member(self, participant_id: str) -> bool:
        return participant_id in (self.member_a, self.member_b)

    def other(self, participant_id: str) -> str:
        if participant_id == self.member_a:
            return self.member_b
        if participant_id == self.member_b:
            return self.member_a
        raise KeyError(f"{participant_id} is not a member of {self.room_id}")

    def duration(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.created_at

    def __repr__(self) -> str:
        return f"Room({self.room_id!r}, {self.member_a!r}, {self.member_b!r})"


__all__ = ["Room", "new_room_id"]
