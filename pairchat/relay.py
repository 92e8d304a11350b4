"""Signaling relay: forwards negotiation and chat messages inside a room.

Holds no state of its own. The sender's room is looked up on every call;
a message from a participant without a room is dropped and counted.
"""
from __future__ import annotations

from typing import List

from .logging_config import get_logger
from .manager import Delivery, RoomManager
from .schemas import (
    Answer,
    AnswerRelay,
    ChatMessage,
    ChatMessageRelay,
    ChatMessageSent,
    IceCandidate,
    IceCandidateRelay,
    Offer,
    OfferRelay,
    RelayedMessage,
    utcnow,
)

logger = get_logger(__name__)


def forward(manager: RoomManager, sender_id: str, message: RelayedMessage) -> List[Delivery]:
    room = manager.room_of(sender_id)
    if room is None:
        logger.warning(f"Dropped {message.type} from {sender_id}: not in a room")
        manager.record_drop()
        return []

    partner_id = room.other(sender_id)

    if isinstance(message, Offer):
        deliveries = [Delivery(partner_id, OfferRelay(offer=message.offer, from_=sender_id))]
    elif isinstance(message, Answer):
        deliveries = [Delivery(partner_id, AnswerRelay(answer=message.answer, from_=sender_id))]
    elif isinstance(message, IceCandidate):
        deliveries = [Delivery(partner_id, IceCandidateRelay(candidate=message.candidate, from_=sender_id))]
    elif isinstance(message, ChatMessage):
        timestamp = utcnow()
        deliveries = [
            Delivery(partner_id, ChatMessageRelay(message=message.message, from_=sender_id, timestamp=timestamp)),
            Delivery(sender_id, ChatMessageSent(message=message.message, timestamp=timestamp)),
        ]
    else:
        raise TypeError(f"Not a relayable message: {type(message).__name__}")

    manager.record_relay(message.type)
    logger.debug(f"{message.type} forwarded from {sender_id} to {partner_id} in {room.room_id}")
    return deliveries


__all__ = ["forward"]
