"""Pydantic models for every message on the signaling channel.

Both directions are closed tagged unions keyed on ``type``. Anything that
does not validate against :data:`ClientMessage` is a malformed message and
is dropped by the server; the client does the same with
:data:`ServerMessage`.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from .constants import CHAT_MAX_LENGTH


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -----------------------------
# Client -> server
# -----------------------------

class JoinChat(WireModel):
    type: Literal["join-chat"] = "join-chat"


class NextPartner(WireModel):
    type: Literal["next-partner"] = "next-partner"


class LeaveChat(WireModel):
    type: Literal["leave-chat"] = "leave-chat"


class Offer(WireModel):
    type: Literal["offer"] = "offer"
    offer: Dict[str, Any]


class Answer(WireModel):
    type: Literal["answer"] = "answer"
    answer: Dict[str, Any]


class IceCandidate(WireModel):
    type: Literal["ice-candidate"] = "ice-candidate"
    candidate: Any


class ChatMessage(WireModel):
    type: Literal["chat-message"] = "chat-message"
    message: str = Field(min_length=1, max_length=CHAT_MAX_LENGTH)


ClientMessage = Annotated[
    Union[JoinChat, NextPartner, LeaveChat, Offer, Answer, IceCandidate, ChatMessage],
    Field(discriminator="type"),
]

# Signaling payloads the relay forwards between room members.
RelayedMessage = Union[Offer, Answer, IceCandidate, ChatMessage]


# -----------------------------
# Server -> client
# -----------------------------

class Welcome(WireModel):
    type: Literal["welcome"] = "welcome"
    id: str


class Waiting(WireModel):
    type: Literal["waiting"] = "waiting"


class Matched(WireModel):
    type: Literal["matched"] = "matched"
    room_id: str
    partner_id: str


class OfferRelay(WireModel):
    type: Literal["offer"] = "offer"
    offer: Dict[str, Any]
    from_: str = Field(alias="from")


class AnswerRelay(WireModel):
    type: Literal["answer"] = "answer"
    answer: Dict[str, Any]
    from_: str = Field(alias="from")


class IceCandidateRelay(WireModel):
    type: Literal["ice-candidate"] = "ice-candidate"
    candidate: Any
    from_: str = Field(alias="from")


class ChatMessageRelay(WireModel):
    type: Literal["chat-message"] = "chat-message"
    message: str
    from_: str = Field(alias="from")
    timestamp: datetime


class ChatMessageSent(WireModel):
    type: Literal["chat-message-sent"] = "chat-message-sent"
    message: str
    timestamp: datetime


class PartnerLeft(WireModel):
    type: Literal["partner-left"] = "partner-left"


ServerMessage = Annotated[
    Union[
        Welcome,
        Waiting,
        Matched,
        OfferRelay,
        AnswerRelay,
        IceCandidateRelay,
        ChatMessageRelay,
        ChatMessageSent,
        PartnerLeft,
    ],
    Field(discriminator="type"),
]

client_message_adapter: TypeAdapter = TypeAdapter(ClientMessage)
server_message_adapter: TypeAdapter = TypeAdapter(ServerMessage)


def parse_client_message(raw: Union[str, bytes, Dict[str, Any]]):
    """Validate an inbound frame; raises ``pydantic.ValidationError``."""
    if isinstance(raw, dict):
        return client_message_adapter.validate_python(raw)
    return client_message_adapter.validate_json(raw)


def parse_server_message(raw: Union[str, bytes, Dict[str, Any]]):
    if isinstance(raw, dict):
        return server_message_adapter.validate_python(raw)
    return server_message_adapter.validate_json(raw)


# -----------------------------
# Diagnostics
# -----------------------------

class RoomSummary(WireModel):
    room_id: str
    members: List[str]
    initiator: str
    created_at: datetime
    duration_seconds: float


class StatsSnapshot(WireModel):
    connected_count: int
    waiting_count: int
    active_room_count: int
    rooms: List[RoomSummary] = []
    total_matches: int = 0
    offers_relayed: int = 0
    answers_relayed: int = 0
    ice_candidates_relayed: int = 0
    chat_messages_relayed: int = 0
    dropped_messages: int = 0


class HealthResponse(WireModel):
    status: Literal["ok"] = "ok"
    connected_count: int


__all__ = [
    "WireModel",
    "utcnow",
    # client -> server
    "JoinChat",
    "NextPartner",
    "LeaveChat",
    "Offer",
    "Answer",
    "IceCandidate",
    "ChatMessage",
    "ClientMessage",
    "RelayedMessage",
    # server -> client
    "Welcome",
    "Waiting",
    "Matched",
    "OfferRelay",
    "AnswerRelay",
    "IceCandidateRelay",
    "ChatMessageRelay",
    "ChatMessageSent",
    "PartnerLeft",
    "ServerMessage",
    "parse_client_message",
    "parse_server_message",
    # diagnostics
    "RoomSummary",
    "StatsSnapshot",
    "HealthResponse",
]
