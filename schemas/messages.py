"""Inbound signaling messages.

Every frame is a JSON object tagged by ``type``. Relayed messages keep any
extra fields the client sent, since their payload is opaque to the server.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class MessageType(str, Enum):
    # Client -> Server
    AUTH = "auth"
    JOIN = "join"
    LEAVE = "leave"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    ENCRYPTION_KEY = "encryption-key"
    ENCRYPTION_DISABLED = "encryption-disabled"
    REACTION = "reaction"
    # Server -> Client
    AUTHENTICATED = "authenticated"
    JOINED = "joined"
    PEER_JOINED = "peer-joined"
    PEER_LEFT = "peer-left"
    ERROR = "error"


RELAY_TYPES = frozenset({
    MessageType.OFFER,
    MessageType.ANSWER,
    MessageType.ICE_CANDIDATE,
    MessageType.ENCRYPTION_KEY,
    MessageType.ENCRYPTION_DISABLED,
    MessageType.REACTION,
})


class AuthMessage(BaseModel):
    type: Literal["auth"]
    token: str = Field(min_length=1)


class JoinMessage(BaseModel):
    type: Literal["join"]
    room_id: str = Field(alias="roomId", min_length=1)


class LeaveMessage(BaseModel):
    type: Literal["leave"]
    room_id: str = Field(alias="roomId", min_length=1)


class RelayMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    target_id: str = Field(alias="targetId", min_length=1)


class OfferMessage(RelayMessage):
    type: Literal["offer"]
    sdp: Optional[Any] = None
    offer: Optional[Any] = None

    @model_validator(mode="after")
    def _has_description(self):
        if self.sdp is None and self.offer is None:
            raise ValueError("offer requires 'sdp' or 'offer'")
        return self


class AnswerMessage(RelayMessage):
    type: Literal["answer"]
    sdp: Optional[Any] = None
    answer: Optional[Any] = None

    @model_validator(mode="after")
    def _has_description(self):
        if self.sdp is None and self.answer is None:
            raise ValueError("answer requires 'sdp' or 'answer'")
        return self


class IceCandidateMessage(RelayMessage):
    type: Literal["ice-candidate"]
    candidate: Any


class EncryptionKeyMessage(RelayMessage):
    type: Literal["encryption-key"]
    key: Any


class EncryptionDisabledMessage(RelayMessage):
    type: Literal["encryption-disabled"]


class ReactionMessage(RelayMessage):
    type: Literal["reaction"]
    emoji: str = Field(min_length=1)


InboundMessage = Annotated[
    Union[
        AuthMessage,
        JoinMessage,
        LeaveMessage,
        OfferMessage,
        AnswerMessage,
        IceCandidateMessage,
        EncryptionKeyMessage,
        EncryptionDisabledMessage,
        ReactionMessage,
    ],
    Field(discriminator="type"),
]

inbound_adapter = TypeAdapter(InboundMessage)


def parse_message(data: dict) -> InboundMessage:
    """Validate a decoded frame. Raises pydantic.ValidationError when the type
    is unknown or a required field is missing."""
    return inbound_adapter.validate_python(data)
