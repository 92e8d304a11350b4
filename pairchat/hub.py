"""Binds live websocket connections to participants.

The :class:`Switchboard` turns inbound frames into ``RoomManager`` /
relay calls and pushes the resulting events to the recipients' outboxes.
Delivery is fire-and-forget: each connection has its own queue drained by
a writer task, so a slow or broken socket only affects its own participant.
"""
from __future__ import annotations

import asyncio
import uuid
from typing import Any, Dict, Iterable, Optional, Union

from fastapi import WebSocket
from pydantic import ValidationError

from . import relay
from .logging_config import get_logger
from .manager import Delivery, RoomManager
from .schemas import (
    Answer,
    ChatMessage,
    IceCandidate,
    JoinChat,
    LeaveChat,
    NextPartner,
    Offer,
    Welcome,
    WireModel,
    parse_client_message,
)

logger = get_logger(__name__)


class ClientConnection:
    """Outbound side of one participant's websocket."""

    def __init__(self, participant_id: str, websocket: WebSocket):
        self.participant_id = participant_id
        self.websocket = websocket
        self._outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None
        self.alive = True

    def start(self) -> None:
        self._writer = asyncio.create_task(self._pump(), name=f"outbox-{self.participant_id}")

    def push(self, message: WireModel) -> None:
        if not self.alive:
            return
        self._outbox.put_nowait(message.to_wire())

    @property
    def pending(self) -> int:
        return self._outbox.qsize()

    async def _pump(self) -> None:
        while True:
            payload = await self._outbox.get()
            try:
                await self.websocket.send_json(payload)
            except Exception:
                # Socket is gone; the receive loop will report the disconnect.
                logger.warning(f"Delivery to {self.participant_id} failed; stopping its outbox", exc_info=True)
                self.alive = False
                while not self._outbox.empty():
                    self._outbox.get_nowait()
                return

    async def close(self) -> None:
        if self._writer is None:
            return
        self._writer.cancel()
        try:
            await self._writer
        except asyncio.CancelledError:
            pass
        self._writer = None


class Switchboard:
    def __init__(self, manager: Optional[RoomManager] = None):
        self.manager = manager or RoomManager()
        self.connections: Dict[str, ClientConnection] = {}

    def connect(self, websocket: WebSocket) -> str:
        """Register an accepted websocket and greet it with its participant id."""
        participant_id = str(uuid.uuid4())
        self.manager.connect(participant_id)
        conn = ClientConnection(participant_id, websocket)
        self.connections[participant_id] = conn
        conn.start()
        conn.push(Welcome(id=participant_id))
        return participant_id

    async def disconnect(self, participant_id: str) -> None:
        conn = self.connections.pop(participant_id, None)
        self.deliver(self.manager.disconnect(participant_id))
        if conn is not None:
            await conn.close()

    async def receive(self, participant_id: str, raw: Union[str, bytes, Dict[str, Any]]) -> None:
        """Handle one inbound frame. Never raises for bad client input."""
        try:
            message = parse_client_message(raw)
        except ValidationError as exc:
            logger.warning(f"Dropped malformed message from {participant_id}: {exc.error_count()} error(s)")
            self.manager.record_drop()
            return
        self.deliver(self.dispatch(participant_id, message))

    def dispatch(self, participant_id: str, message) -> Iterable[Delivery]:
        if isinstance(message, JoinChat):
            logger.info(f"Participant {participant_id} wants to join chat")
            return self.manager.request_join(participant_id)
        elif isinstance(message, NextPartner):
            return self.manager.next_partner(participant_id)
        elif isinstance(message, LeaveChat):
            return self.manager.leave(participant_id)
        elif isinstance(message, (Offer, Answer, IceCandidate, ChatMessage)):
            return relay.forward(self.manager, participant_id, message)
        raise TypeError(f"Unhandled message type: {type(message).__name__}")

    def deliver(self, deliveries: Iterable[Delivery]) -> None:
        for delivery in deliveries:
            conn = self.connections.get(delivery.recipient)
            if conn is None:
                logger.debug(f"No connection for {delivery.recipient}; dropped {delivery.message.type}")
                continue
            conn.push(delivery.message)


__all__ = ["ClientConnection", "Switchboard"]
