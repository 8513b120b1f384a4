"""Inbound websocket events, validated before they reach the routing engine."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from models.room_record import DEFAULT_ROOM_NAME
from utils.errors import ValidationError
from utils.media_validation import ensure_image_payload

MAX_NAME_LENGTH = 64

# Event names used by the first web client.
EVENT_ALIASES = {
    "changeSpace": "switchRoom",
    "startDM": "startDirect",
    "closeDM": "endDirect",
    "sendMessage": "send",
}


def _clean_name(value: str, what: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{what} is required.")
    if len(value) > MAX_NAME_LENGTH:
        raise ValueError(f"{what} must be at most {MAX_NAME_LENGTH} characters.")
    if any(ord(ch) < 32 or ord(ch) == 127 for ch in value):
        raise ValueError(f"{what} must not contain control characters.")
    return value


class _Event(BaseModel):
    model_config = ConfigDict(extra="ignore")


class JoinEvent(_Event):
    type: Literal["join"]
    identity: str = Field(validation_alias=AliasChoices("identity", "nickname"))
    room_id: str = Field(DEFAULT_ROOM_NAME, validation_alias=AliasChoices("roomId", "space"))

    @field_validator("identity")
    @classmethod
    def _identity(cls, value: str) -> str:
        return _clean_name(value, "Identity")

    @field_validator("room_id")
    @classmethod
    def _room(cls, value: str) -> str:
        return _clean_name(value, "Room name")


class SwitchRoomEvent(_Event):
    type: Literal["switchRoom"]
    room_id: str = Field(validation_alias=AliasChoices("roomId", "space"))

    @field_validator("room_id")
    @classmethod
    def _room(cls, value: str) -> str:
        return _clean_name(value, "Room name")


class StartDirectEvent(_Event):
    type: Literal["startDirect"]
    peer_identity: str = Field(validation_alias=AliasChoices("peerIdentity", "receiver"))

    @field_validator("peer_identity")
    @classmethod
    def _peer(cls, value: str) -> str:
        return _clean_name(value, "Peer identity")


class EndDirectEvent(_Event):
    type: Literal["endDirect"]
    room_id: str = Field(DEFAULT_ROOM_NAME, validation_alias=AliasChoices("roomId", "space"))

    @field_validator("room_id")
    @classmethod
    def _room(cls, value: str) -> str:
        return _clean_name(value, "Room name")


class SendEvent(_Event):
    type: Literal["send"]
    content: Optional[str] = None
    image: Optional[str] = None

    @field_validator("image")
    @classmethod
    def _image(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return ensure_image_payload(value)

    @model_validator(mode="after")
    def _has_body(self) -> "SendEvent":
        if self.content is not None and not self.content.strip():
            self.content = None
        if self.content is None and self.image is None:
            raise ValueError("Message content or an image is required.")
        return self


InboundEvent = Annotated[
    Union[JoinEvent, SwitchRoomEvent, StartDirectEvent, EndDirectEvent, SendEvent],
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(InboundEvent)


def parse_event(payload: Any) -> Union[JoinEvent, SwitchRoomEvent, StartDirectEvent, EndDirectEvent, SendEvent]:
    """Validate a decoded websocket frame into one of the inbound event models.

    Raises:
        ValidationError: If the frame is not an object, names an unknown event
            type or is missing required fields.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Event payload must be a JSON object.")
    event_type = payload.get("type")
    if not isinstance(event_type, str):
        raise ValidationError("Event payload needs a string 'type'.")
    if event_type in EVENT_ALIASES:
        payload = {**payload, "type": EVENT_ALIASES[event_type]}
    try:
        return _EVENT_ADAPTER.validate_python(payload)
    except PydanticValidationError as exc:
        details = "; ".join(err["msg"] for err in exc.errors())
        raise ValidationError(f"Invalid {event_type or 'unknown'} event: {details}") from exc
