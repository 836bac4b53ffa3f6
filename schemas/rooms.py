from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, TypeAdapter, ValidationError
from typing import Annotated, Any, List, Literal, Optional, Union
import json

from constants import MAX_NAME_LENGTH, MAX_PEER_ID_LENGTH
from errors import InvalidInput


class ParticipantInfo(BaseModel):
    peer_id: str
    display_name: str = ""


class RoomSummary(BaseModel):
    id: str
    name: str
    count: int
    capacity: int
    has_password: bool


# --- REST ---

class CreateRoomRequest(BaseModel):
    name: StrictStr
    capacity: Optional[StrictInt] = None
    password: Optional[StrictStr] = None

class CreateRoomResponse(BaseModel):
    room_id: str
    ws_url: str

class RoomDetailsResponse(RoomSummary):
    created_at: str
    is_full: bool
    participants: List[ParticipantInfo] = []


# --- Inbound WebSocket messages ---

class _Inbound(BaseModel):
    model_config = ConfigDict(extra="ignore")

class ListRoomsMessage(_Inbound):
    type: Literal["list_rooms"]

class CreateRoomMessage(_Inbound):
    type: Literal["create_room"]
    name: StrictStr
    capacity: Optional[StrictInt] = None
    password: Optional[StrictStr] = None

class JoinRoomMessage(_Inbound):
    type: Literal["join_room"]
    room_id: StrictStr
    peer_id: StrictStr = Field(max_length=MAX_PEER_ID_LENGTH)
    display_name: StrictStr = Field("", max_length=MAX_NAME_LENGTH)
    password: Optional[StrictStr] = None

class LeaveRoomMessage(_Inbound):
    type: Literal["leave_room"]
    room_id: Optional[StrictStr] = None

class KickParticipantMessage(_Inbound):
    type: Literal["kick_participant"]
    target_peer_id: StrictStr = Field(max_length=MAX_PEER_ID_LENGTH)

class SendChatMessage(_Inbound):
    type: Literal["send_chat"]
    text: StrictStr

class SignalMessage(_Inbound):
    type: Literal["signal"]
    target_peer_id: StrictStr
    data: Any = None


InboundMessage = Annotated[
    Union[
        ListRoomsMessage,
        CreateRoomMessage,
        JoinRoomMessage,
        LeaveRoomMessage,
        KickParticipantMessage,
        SendChatMessage,
        SignalMessage,
    ],
    Field(discriminator="type"),
]

inbound_adapter = TypeAdapter(InboundMessage)


def parse_inbound(raw: str):
    """Validate a raw WebSocket frame into one of the inbound message models.

    Anything that is not a JSON object with a known ``type`` and correctly
    typed fields raises ``InvalidInput``.
    """
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        raise InvalidInput("Message is not valid JSON")
    if not isinstance(payload, dict):
        raise InvalidInput("Message must be a JSON object")
    try:
        return inbound_adapter.validate_python(payload)
    except ValidationError as e:
        raise InvalidInput(f"Malformed {payload.get('type', 'unknown')} message: {e.error_count()} error(s)")


# --- Outbound WebSocket events ---

class RoomListEvent(BaseModel):
    type: Literal["room_list"] = "room_list"
    rooms: List[RoomSummary]

class RoomCreatedEvent(BaseModel):
    type: Literal["room_created"] = "room_created"
    room_id: str

class ParticipantJoinedEvent(BaseModel):
    type: Literal["participant_joined"] = "participant_joined"
    peer_id: str
    display_name: str

class ExistingParticipantsEvent(BaseModel):
    type: Literal["existing_participants"] = "existing_participants"
    room_id: str
    participants: List[ParticipantInfo]

class ParticipantLeftEvent(BaseModel):
    type: Literal["participant_left"] = "participant_left"
    peer_id: str

class ChatMessageEvent(BaseModel):
    type: Literal["chat_message"] = "chat_message"
    text: str
    sender_peer_id: str
    sender_name: str
    timestamp: str

class KickedEvent(BaseModel):
    type: Literal["kicked"] = "kicked"
    room_id: str

class SignalEvent(BaseModel):
    type: Literal["signal"] = "signal"
    from_peer_id: str
    data: Any = None

class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    reason: str
    detail: Optional[str] = None
