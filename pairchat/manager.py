"""Room manager: the single owner of pairing state.

The registry, the waiting queue and the room table are only ever mutated
here, and every public operation runs under one lock so no caller can
observe a half-applied match or teardown. Operations never perform I/O;
they return the events to deliver as a list of :class:`Delivery` and leave
sending to the caller.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .logging_config import get_logger
from .registry import ConnectionRegistry, PairingState, Participant
from .room import Room
from .schemas import Matched, PartnerLeft, RoomSummary, StatsSnapshot, Waiting, WireModel
from .waiting_queue import WaitingQueue

logger = get_logger(__name__)


@dataclass(frozen=True)
class Delivery:
    """One outbound message addressed to one participant."""

    recipient: str
    message: WireModel


class RelayCounters:
    def __init__(self) -> None:
        self.offers = 0
        self.answers = 0
        self.ice_candidates = 0
        self.chat_messages = 0
        self.dropped = 0


class RoomManager:
    def __init__(self) -> None:
        self.registry = ConnectionRegistry()
        self.queue = WaitingQueue()
        self.rooms: Dict[str, Room] = {}
        self.counters = RelayCounters()
        self.total_matches = 0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self, participant_id: str) -> Participant:
        with self._lock:
            entry = self.registry.register(participant_id)
        logger.info(f"Participant {participant_id} connected")
        return entry

    def disconnect(self, participant_id: str) -> List[Delivery]:
        """Tear down everything the participant holds and forget it.

        Safe to call repeatedly and for ids that were never registered.
        """
        with self._lock:
            deliveries = self._release(participant_id)
            removed = self.registry.remove(participant_id)
        if removed is not None:
            logger.info(f"Participant {participant_id} disconnected")
        return deliveries

    # ------------------------------------------------------------------
    # Pairing operations
    # ------------------------------------------------------------------

    def request_join(self, participant_id: str) -> List[Delivery]:
        with self._lock:
            entry = self.registry.lookup(participant_id)
            deliveries: List[Delivery] = []

            if entry.state == PairingState.MATCHED:
                # Rejoin without a clean stop: drop the stale room first.
                logger.info(f"Participant {participant_id} rejoined while matched; closing stale room {entry.room_id}")
                deliveries.extend(self._teardown(entry))
            elif entry.state == PairingState.WAITING:
                deliveries.append(Delivery(participant_id, Waiting()))
                return deliveries

            deliveries.extend(self._match_or_enqueue(entry))
            return deliveries

    def next_partner(self, participant_id: str) -> List[Delivery]:
        """Leave the current room (if any) and go back into the queue."""
        with self._lock:
            entry = self.registry.lookup(participant_id)
            if entry.state == PairingState.WAITING:
                return [Delivery(participant_id, Waiting())]
            deliveries: List[Delivery] = []
            if entry.state == PairingState.MATCHED:
                logger.info(f"Participant {participant_id} requested next partner")
                deliveries.extend(self._teardown(entry))
            deliveries.extend(self._match_or_enqueue(entry))
            return deliveries

    def leave(self, participant_id: str) -> List[Delivery]:
        """Explicit stop: leave any room or queue slot and become idle."""
        with self._lock:
            self.registry.lookup(participant_id)
            deliveries = self._release(participant_id)
        logger.info(f"Participant {participant_id} stopped")
        return deliveries

    def leave_room(self, participant_id: str) -> List[Delivery]:
        """Close the participant's room, if it has one; both members become idle.

        A second call for the same id finds no room and returns nothing, so
        the partner is notified at most once.
        """
        with self._lock:
            entry = self.registry.find(participant_id)
            if entry is None or entry.state != PairingState.MATCHED:
                return []
            return self._teardown(entry)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def room_of(self, participant_id: str) -> Optional[Room]:
        with self._lock:
            entry = self.registry.find(participant_id)
            if entry is None or entry.room_id is None:
                return None
            return self.rooms.get(entry.room_id)

    def state_of(self, participant_id: str) -> PairingState:
        with self._lock:
            return self.registry.lookup(participant_id).state

    def record_relay(self, kind: str) -> None:
        with self._lock:
            if kind == "offer":
                self.counters.offers += 1
            elif kind == "answer":
                self.counters.answers += 1
            elif kind == "ice-candidate":
                self.counters.ice_candidates += 1
            elif kind == "chat-message":
                self.counters.chat_messages += 1

    def record_drop(self) -> None:
        with self._lock:
            self.counters.dropped += 1

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            now = time.time()
            rooms = [
                RoomSummary(
                    room_id=room.room_id,
                    members=list(room.members),
                    initiator=room.initiator,
                    created_at=datetime.fromtimestamp(room.created_at, tz=timezone.utc),
                    duration_seconds=round(room.duration(now), 3),
                )
                for room in self.rooms.values()
            ]
            return StatsSnapshot(
                connected_count=len(self.registry),
                waiting_count=len(self.queue),
                active_room_count=len(self.rooms),
                rooms=rooms,
                total_matches=self.total_matches,
                offers_relayed=self.counters.offers,
                answers_relayed=self.counters.answers,
                ice_candidates_relayed=self.counters.ice_candidates,
                chat_messages_relayed=self.counters.chat_messages,
                dropped_messages=self.counters.dropped,
            )

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _match_or_enqueue(self, entry: Participant) -> List[Delivery]:
        partner_id = self.queue.pop()
        if partner_id is None:
            self.queue.push(entry.id)
            entry.mark_waiting()
            logger.info(f"Participant {entry.id} added to waiting queue")
            return [Delivery(entry.id, Waiting())]

        if partner_id == entry.id:
            raise AssertionError(f"Participant {entry.id} was queued while asking to be matched")
        partner = self.registry.lookup(partner_id)

        room = Room(entry.id, partner_id)
        self.rooms[room.room_id] = room
        entry.mark_matched(room.room_id)
        partner.mark_matched(room.room_id)
        self.total_matches += 1
        logger.info(f"Participants {entry.id} and {partner_id} matched in room {room.room_id}")
        return [
            Delivery(entry.id, Matched(room_id=room.room_id, partner_id=partner_id)),
            Delivery(partner_id, Matched(room_id=room.room_id, partner_id=entry.id)),
        ]

    def _teardown(self, entry: Participant) -> List[Delivery]:
        room = self.rooms.pop(entry.room_id, None) if entry.room_id else None
        entry.mark_idle()
        if room is None:
            return []

        partner_id = room.other(entry.id)
        partner = self.registry.find(partner_id)
        deliveries: List[Delivery] = []
        if partner is not None and partner.room_id == room.room_id:
            partner.mark_idle()
            deliveries.append(Delivery(partner_id, PartnerLeft()))
        logger.info(f"Room {room.room_id} closed by {entry.id} after {room.duration():.1f}s")
        return deliveries

    def _release(self, participant_id: str) -> List[Delivery]:
        entry = self.registry.find(participant_id)
        if entry is None:
            return []
        self.queue.discard(participant_id)
        if entry.state == PairingState.MATCHED:
            return self._teardown(entry)
        entry.mark_idle()
        return []


__all__ = ["Delivery", "RelayCounters", "RoomManager"]
