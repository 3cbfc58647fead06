"""
Signaling wire protocol.

JSON messages over a persistent WebSocket, one connection per peer. Every
message carries a ``type`` tag; the remaining fields depend on the tag:

    peer-id            {"peerId"}                          relay -> peer
    register           {"role", "sessionId"?}              peer  -> relay
    registered         {"peerId", "role", "sessionId"?}    relay -> peer
    discover           {}                                  peer  -> relay
    peers-available    {"peers": [{"peerId", "role"}]}     relay -> peer
    offer              {"sessionId", "offer", "from"?}     both
    answer             {"sessionId", "answer", "from"?}    both
    ice-candidate      {"sessionId", "candidate", "from"?} both
    session-created    {"sessionId"}                       relay -> peer
    peer-disconnected  {"sessionId"?}                      relay -> peer
    session-superseded {"sessionId", "role"}               relay -> peer
    error              {"message", "code"?}                relay -> peer

Offer/answer/candidate payloads belong to the direct transport and are
carried as opaque JSON values.
"""
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from constants import (
    MSG_ANSWER,
    MSG_DISCOVER,
    MSG_ERROR,
    MSG_ICE_CANDIDATE,
    MSG_OFFER,
    MSG_PEER_DISCONNECTED,
    MSG_PEER_ID,
    MSG_PEERS_AVAILABLE,
    MSG_REGISTER,
    MSG_REGISTERED,
    MSG_SESSION_CREATED,
    MSG_SESSION_SUPERSEDED,
)
from .exceptions import MalformedMessage


class SignalingMessage(BaseModel):
    """Base for every wire message."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class RelayedMessage(SignalingMessage):
    """Message whose payload is forwarded verbatim to the counterpart."""

    PAYLOAD_FIELD: ClassVar[str] = ""

    session_id: Optional[str] = Field(default=None, alias="sessionId")
    from_peer: Optional[str] = Field(default=None, alias="from")

    @property
    def payload(self) -> Any:
        return getattr(self, self.PAYLOAD_FIELD)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        # A null payload is still part of the message
        data[self.PAYLOAD_FIELD] = self.payload
        return data

    def forwarded(self, from_peer: str, session_id: str) -> "RelayedMessage":
        """Copy tagged with the originating peer, payload untouched."""
        return self.model_copy(update={"from_peer": from_peer, "session_id": session_id})


# =============================================================================
# Peer -> relay
# =============================================================================

class Register(SignalingMessage):
    type: Literal["register"] = MSG_REGISTER
    # Validated by the registry so a bad role is reported, not dropped
    role: Optional[Any] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class Discover(SignalingMessage):
    type: Literal["discover"] = MSG_DISCOVER


class Offer(RelayedMessage):
    PAYLOAD_FIELD: ClassVar[str] = "offer"

    type: Literal["offer"] = MSG_OFFER
    offer: Any = None


class Answer(RelayedMessage):
    PAYLOAD_FIELD: ClassVar[str] = "answer"

    type: Literal["answer"] = MSG_ANSWER
    answer: Any = None


class IceCandidate(RelayedMessage):
    PAYLOAD_FIELD: ClassVar[str] = "candidate"

    type: Literal["ice-candidate"] = MSG_ICE_CANDIDATE
    candidate: Any = None


# =============================================================================
# Relay -> peer
# =============================================================================

class PeerAssigned(SignalingMessage):
    type: Literal["peer-id"] = MSG_PEER_ID
    peer_id: str = Field(alias="peerId")


class Registered(SignalingMessage):
    type: Literal["registered"] = MSG_REGISTERED
    peer_id: str = Field(alias="peerId")
    role: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class PeerSummary(SignalingMessage):
    peer_id: str = Field(alias="peerId")
    role: str


class PeersAvailable(SignalingMessage):
    type: Literal["peers-available"] = MSG_PEERS_AVAILABLE
    peers: List[PeerSummary] = Field(default_factory=list)


class SessionCreated(SignalingMessage):
    type: Literal["session-created"] = MSG_SESSION_CREATED
    session_id: str = Field(alias="sessionId")


class PeerDisconnected(SignalingMessage):
    type: Literal["peer-disconnected"] = MSG_PEER_DISCONNECTED
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class Superseded(SignalingMessage):
    type: Literal["session-superseded"] = MSG_SESSION_SUPERSEDED
    session_id: str = Field(alias="sessionId")
    role: str


class Error(SignalingMessage):
    type: Literal["error"] = MSG_ERROR
    message: str
    code: Optional[str] = None


InboundMessage = Annotated[
    Union[Register, Discover, Offer, Answer, IceCandidate],
    Field(discriminator="type"),
]

OutboundMessage = Annotated[
    Union[PeerAssigned, Registered, PeersAvailable, Offer, Answer, IceCandidate,
          SessionCreated, PeerDisconnected, Superseded, Error],
    Field(discriminator="type"),
]

_inbound_adapter = TypeAdapter(InboundMessage)
_outbound_adapter = TypeAdapter(OutboundMessage)


def _load(raw: Union[str, bytes]) -> Dict[str, Any]:
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise MalformedMessage(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedMessage("Message must be a JSON object")
    if "type" not in data:
        raise MalformedMessage("Message has no type")
    return data


def decode(raw: Union[str, bytes]) -> SignalingMessage:
    """Parse a frame sent by a peer to the relay."""
    data = _load(raw)
    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedMessage(f"Invalid {data.get('type')!r} message: {e.error_count()} error(s)") from e


def decode_outbound(raw: Union[str, bytes]) -> SignalingMessage:
    """Parse a frame sent by the relay to a peer (endpoint side)."""
    data = _load(raw)
    try:
        return _outbound_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedMessage(f"Invalid {data.get('type')!r} message: {e.error_count()} error(s)") from e


def encode(message: SignalingMessage) -> str:
    return orjson.dumps(message.to_dict()).decode()
