"""Headless participant: a signaling connection plus its negotiation state machine.

Usage::

    client = SignalingClient("ws://localhost:3002/ws")
    runner = asyncio.create_task(client.run())
    await client.wait_ready()
    await client.start()            # join-chat
    ...
    await client.send_chat("hello")
    msg = await client.receive_chat(timeout=10)
    await client.next_partner()
    await client.stop()
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import websockets
from pydantic import ValidationError

from ..constants import SERVER_URL
from ..logging_config import get_logger
from ..schemas import (
    AnswerRelay,
    ChatMessage,
    ChatMessageRelay,
    ChatMessageSent,
    IceCandidateRelay,
    Matched,
    OfferRelay,
    PartnerLeft,
    Waiting,
    Welcome,
    WireModel,
    parse_server_message,
)
from .negotiation import NegotiationState, Negotiator, StateListener
from .transport import AiortcTransport, TransportFactory

logger = get_logger(__name__)


@dataclass
class ReceivedChat:
    message: str
    sender: str
    timestamp: datetime


class SignalingClient:
    def __init__(
        self,
        url: str = SERVER_URL,
        transport_factory: Optional[TransportFactory] = None,
        auto_requeue: bool = False,
        on_state_change: Optional[StateListener] = None,
    ):
        self.url = url
        self.auto_requeue = auto_requeue
        self.negotiator = Negotiator(
            send=self._enqueue,
            transport_factory=transport_factory or AiortcTransport.factory(),
            on_state_change=on_state_change,
        )
        self.chats: "asyncio.Queue[ReceivedChat]" = asyncio.Queue()
        self.acknowledged: "asyncio.Queue[ChatMessageSent]" = asyncio.Queue()
        self._outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self._ready = asyncio.Event()

    @property
    def participant_id(self) -> Optional[str]:
        return self.negotiator.participant_id

    @property
    def state(self) -> NegotiationState:
        return self.negotiator.state

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Connect and process server messages until the channel closes."""
        async with websockets.connect(self.url) as ws:
            logger.info(f"Connected to signaling server {self.url}")
            writer = asyncio.create_task(self._write(ws))
            try:
                async for raw in ws:
                    await self.handle(raw)
            except websockets.ConnectionClosed:
                logger.info("Signaling connection closed")
            finally:
                writer.cancel()
                try:
                    await writer
                except asyncio.CancelledError:
                    pass
                self._ready.clear()
                await self.negotiator.close()
        logger.info("Disconnected from signaling server")

    async def wait_ready(self, timeout: float = 10.0) -> str:
        """Wait for the server to assign this connection its participant id."""
        await asyncio.wait_for(self._ready.wait(), timeout)
        return self.participant_id

    async def _write(self, ws) -> None:
        while True:
            payload = await self._outbox.get()
            await ws.send(json.dumps(payload))

    def _enqueue(self, message: WireModel) -> None:
        self._outbox.put_nowait(message.to_wire())

    # ------------------------------------------------------------------
    # Participant actions
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self.negotiator.request_match()

    async def next_partner(self) -> None:
        await self.negotiator.next_partner()

    async def stop(self) -> None:
        await self.negotiator.stop()

    async def send_chat(self, text: str) -> None:
        self._enqueue(ChatMessage(message=text))

    async def receive_chat(self, timeout: Optional[float] = None) -> ReceivedChat:
        if timeout:
            return await asyncio.wait_for(self.chats.get(), timeout)
        return await self.chats.get()

    # ------------------------------------------------------------------
    # Inbound dispatch
    # ------------------------------------------------------------------

    async def handle(self, raw) -> None:
        try:
            message = parse_server_message(raw)
        except ValidationError as exc:
            logger.warning(f"Ignored malformed server message: {exc.error_count()} error(s)")
            return

        negotiator = self.negotiator
        if isinstance(message, Welcome):
            negotiator.set_identity(message.id)
            self._ready.set()
        elif isinstance(message, Waiting):
            negotiator.handle_waiting()
        elif isinstance(message, Matched):
            await negotiator.handle_matched(message.room_id, message.partner_id)
        elif isinstance(message, OfferRelay):
            await negotiator.handle_offer(message.offer, message.from_)
        elif isinstance(message, AnswerRelay):
            await negotiator.handle_answer(message.answer, message.from_)
        elif isinstance(message, IceCandidateRelay):
            await negotiator.handle_remote_candidate(message.candidate, message.from_)
        elif isinstance(message, ChatMessageRelay):
            self.chats.put_nowait(ReceivedChat(message.message, message.from_, message.timestamp))
        elif isinstance(message, ChatMessageSent):
            self.acknowledged.put_nowait(message)
        elif isinstance(message, PartnerLeft):
            await negotiator.handle_partner_left()
            if self.auto_requeue and negotiator.state == NegotiationState.IDLE:
                await negotiator.request_match()
        else:
            raise TypeError(f"Unhandled server message: {type(message).__name__}")


__all__ = ["ReceivedChat", "SignalingClient"]
