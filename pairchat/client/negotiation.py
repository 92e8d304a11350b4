"""Participant-side negotiation state machine.

Drives one local :class:`PeerTransport` through the offer/answer exchange
for the current room. Outbound signaling goes through the ``send``
callable handed in by the owner (normally :class:`SignalingClient`), which
must deliver messages in call order.

States::

    IDLE -> AWAITING_MATCH -> OFFERING -> AWAITING_ANSWER -> CONNECTED
                           -> AWAITING_OFFER -> ANSWERING -> CONNECTED

``CLOSED`` is entered on transport failure or when no transport could be
created; it holds until the participant asks for a new partner or stops.
Partner-left and explicit stop pass through ``CLOSED`` and settle in
``IDLE``. A partner-left that crosses our own join or next-partner request
leaves us in ``AWAITING_MATCH``.

``matched`` is only accepted while a join request is outstanding; one that
arrives after ``stop()`` is ignored. Other messages that arrive in the
wrong state are logged as ordering anomalies and ignored too. Every await
re-checks the session token so a completion that lands after teardown
cannot touch the next room's state.
"""
from __future__ import annotations

import time
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from ..constants import SIGNALING_LOG_SIZE
from ..errors import TransportError
from ..logging_config import get_logger
from ..schemas import Answer, IceCandidate, JoinChat, LeaveChat, NextPartner, Offer, WireModel
from ..tiebreak import is_initiator
from .transport import PeerTransport, TransportFactory

logger = get_logger(__name__)


class NegotiationState(str, Enum):
    IDLE = "idle"
    AWAITING_MATCH = "awaiting-match"
    OFFERING = "offering"
    AWAITING_OFFER = "awaiting-offer"
    AWAITING_ANSWER = "awaiting-answer"
    ANSWERING = "answering"
    CONNECTED = "connected"
    CLOSED = "closed"


# States in which a peer transport exists for the current room.
ROOM_STATES = {
    NegotiationState.OFFERING,
    NegotiationState.AWAITING_OFFER,
    NegotiationState.AWAITING_ANSWER,
    NegotiationState.ANSWERING,
    NegotiationState.CONNECTED,
}

StateListener = Callable[[NegotiationState, NegotiationState], None]


class Negotiator:
    def __init__(
        self,
        send: Callable[[WireModel], None],
        transport_factory: TransportFactory,
        on_state_change: Optional[StateListener] = None,
        log_size: int = SIGNALING_LOG_SIZE,
    ):
        self._send = send
        self._transport_factory = transport_factory
        self._on_state_change = on_state_change

        self.participant_id: Optional[str] = None
        self.state = NegotiationState.IDLE
        self.room_id: Optional[str] = None
        self.partner_id: Optional[str] = None
        self.is_initiator = False
        self.transport: Optional[PeerTransport] = None
        self.connection_state: Optional[str] = None
        self.error: Optional[str] = None

        self.local_candidates = 0
        self.remote_candidates = 0
        self.pending_candidates: List[Any] = []
        self.remote_description_set = False

        self.signaling_log: Deque[Tuple[float, str]] = deque(maxlen=log_size)
        self.join_pending = False
        self._session = 0

    # ------------------------------------------------------------------
    # Participant actions
    # ------------------------------------------------------------------

    def set_identity(self, participant_id: str) -> None:
        self.participant_id = participant_id
        self._log(f"Assigned participant id {participant_id}")

    async def request_match(self) -> None:
        await self._teardown()
        self.error = None
        self.join_pending = True
        self._transition(NegotiationState.AWAITING_MATCH)
        self._send(JoinChat())

    async def next_partner(self) -> None:
        await self._teardown()
        self.error = None
        self.join_pending = True
        self._transition(NegotiationState.AWAITING_MATCH)
        self._send(NextPartner())

    async def stop(self) -> None:
        await self._teardown()
        self.error = None
        self.join_pending = False
        self._transition(NegotiationState.IDLE)
        self._send(LeaveChat())

    # ------------------------------------------------------------------
    # Server events
    # ------------------------------------------------------------------

    def handle_waiting(self) -> None:
        if self.state != NegotiationState.AWAITING_MATCH:
            self._anomaly("waiting")
            return
        self._log("Waiting for partner to join")

    async def handle_matched(self, room_id: str, partner_id: str) -> None:
        if self.participant_id is None:
            raise RuntimeError("Matched before the server assigned a participant id")
        if not self.join_pending:
            self._anomaly("matched", f"room {room_id}, no join outstanding")
            return
        self.join_pending = False
        if self.transport is not None or self.state in ROOM_STATES:
            await self._teardown()

        self._session += 1
        session = self._session
        self.room_id = room_id
        self.partner_id = partner_id
        self.is_initiator = is_initiator(self.participant_id, partner_id)
        self._log(f"Matched with partner {partner_id} in {room_id} (initiator={self.is_initiator})")

        try:
            transport = self._transport_factory(room_id)
        except TransportError as exc:
            self._fail(f"Could not create peer transport: {exc}")
            return
        self.transport = transport
        transport.on_local_candidate(lambda candidate: self._on_local_candidate(session, candidate))
        transport.on_connection_state_change(lambda state: self._on_connection_state(session, state))

        if not self.is_initiator:
            self._transition(NegotiationState.AWAITING_OFFER)
            return

        self._transition(NegotiationState.OFFERING)
        try:
            offer = await transport.create_offer()
            if session != self._session:
                return
            await transport.set_local_description(offer)
            if session != self._session:
                return
        except TransportError as exc:
            if session == self._session:
                self._fail(f"Error creating offer: {exc}")
            return
        self._send(Offer(offer=offer))
        self._log("SDP offer sent")
        self._transition(NegotiationState.AWAITING_ANSWER)

    async def handle_offer(self, offer: Dict[str, Any], sender: str) -> None:
        if self.state != NegotiationState.AWAITING_OFFER or sender != self.partner_id:
            self._anomaly("offer", f"from {sender}")
            return
        session = self._session
        transport = self.transport
        self._transition(NegotiationState.ANSWERING)
        try:
            await transport.set_remote_description(offer)
            if session != self._session:
                return
            self.remote_description_set = True
            await self._flush_pending_candidates(session)
            if session != self._session:
                return
            answer = await transport.create_answer()
            if session != self._session:
                return
            await transport.set_local_description(answer)
            if session != self._session:
                return
        except TransportError as exc:
            if session == self._session:
                self._fail(f"Error handling offer: {exc}")
            return
        self._send(Answer(answer=answer))
        self._log("SDP answer sent")

    async def handle_answer(self, answer: Dict[str, Any], sender: str) -> None:
        if (
            self.state != NegotiationState.AWAITING_ANSWER
            or self.remote_description_set
            or sender != self.partner_id
        ):
            self._anomaly("answer", f"from {sender}")
            return
        session = self._session
        try:
            await self.transport.set_remote_description(answer)
            if session != self._session:
                return
            self.remote_description_set = True
            self._log("Remote description set successfully")
            await self._flush_pending_candidates(session)
        except TransportError as exc:
            if session == self._session:
                self._fail(f"Error handling answer: {exc}")

    async def handle_remote_candidate(self, candidate: Any, sender: str) -> None:
        if self.state not in ROOM_STATES or sender != self.partner_id:
            self._anomaly("ice-candidate", f"from {sender}")
            return
        self.remote_candidates += 1
        if not self.remote_description_set:
            self.pending_candidates.append(candidate)
            return
        await self._add_remote_candidate(self._session, candidate)

    async def handle_partner_left(self) -> None:
        self._log("Partner left the chat")
        await self._teardown()
        if self.join_pending:
            # Our own join or next-partner is already on its way; keep waiting for it.
            self._transition(NegotiationState.AWAITING_MATCH)
            return
        self._transition(NegotiationState.IDLE)

    async def close(self) -> None:
        """Release the transport without sending anything (signaling channel is gone)."""
        await self._teardown()
        self.join_pending = False
        self._transition(NegotiationState.IDLE)

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    def _on_local_candidate(self, session: int, candidate: Dict[str, Any]) -> None:
        if session != self._session:
            return
        self.local_candidates += 1
        self._send(IceCandidate(candidate=candidate))

    def _on_connection_state(self, session: int, state: str) -> None:
        if session != self._session:
            return
        self.connection_state = state
        self._log(f"Connection state: {state}")
        if state == "connected" and self.state in (NegotiationState.AWAITING_ANSWER, NegotiationState.ANSWERING):
            self._transition(NegotiationState.CONNECTED)
        elif state == "failed":
            self._fail("Connection failed")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _flush_pending_candidates(self, session: int) -> None:
        while self.pending_candidates and session == self._session:
            await self._add_remote_candidate(session, self.pending_candidates.pop(0))

    async def _add_remote_candidate(self, session: int, candidate: Any) -> None:
        try:
            await self.transport.add_remote_candidate(candidate)
        except TransportError as exc:
            if session == self._session:
                logger.warning(f"Error adding ICE candidate: {exc}")
                self._log(f"Error adding ICE candidate: {exc}")

    async def _teardown(self) -> None:
        self._session += 1
        transport = self.transport
        in_room = self.state in ROOM_STATES
        self.transport = None
        self.room_id = None
        self.partner_id = None
        self.is_initiator = False
        self.connection_state = None
        self.local_candidates = 0
        self.remote_candidates = 0
        self.pending_candidates = []
        self.remote_description_set = False
        if in_room:
            self._transition(NegotiationState.CLOSED)
        if transport is not None:
            await transport.close()

    def _fail(self, reason: str) -> None:
        self.error = reason
        logger.error(reason)
        self._log(reason)
        self._transition(NegotiationState.CLOSED)

    def _anomaly(self, message_type: str, detail: str = "") -> None:
        text = f"Ignored {message_type} in state {self.state.value}"
        if detail:
            text = f"{text} ({detail})"
        logger.warning(text)
        self._log(text)

    def _transition(self, new_state: NegotiationState) -> None:
        old_state = self.state
        if old_state == new_state:
            return
        self.state = new_state
        logger.debug(f"Negotiation {old_state.value} -> {new_state.value}")
        if self._on_state_change is not None:
            self._on_state_change(old_state, new_state)

    def _log(self, message: str) -> None:
        self.signaling_log.append((time.time(), message))


__all__ = ["NegotiationState", "Negotiator", "ROOM_STATES"]
