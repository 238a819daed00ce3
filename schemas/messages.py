"""Frames exchanged over the room WebSocket.

Every frame is a JSON object ``{"event": <name>, "data": <payload>}``.
"""
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, field_validator

# no coercion: a value is relayed as sent or the update is dropped
Number = Union[StrictInt, StrictFloat]

# client -> server
JOIN = "join"
LOC_UPDATE = "loc_update"

# server -> client
ROOM_INFO = "room_info"
PEER_LOC = "peer_loc"
PEER_LEFT = "peer_left"
ERROR_MESSAGE = "error_message"


class Frame(BaseModel):
    event: str
    data: Any = None


class JoinRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    token: StrictStr = ""
    nickname: Optional[str] = None

    @field_validator("token", mode="before")
    @classmethod
    def token_or_empty(cls, value):
        # a non-string token can never name a room
        return value if isinstance(value, str) else ""

    @field_validator("nickname", mode="before")
    @classmethod
    def nickname_or_empty(cls, value):
        return value if isinstance(value, str) else ""


class LocationUpdate(BaseModel):
    """Recognised location fields. Ranges are documented, not enforced."""

    model_config = ConfigDict(extra="ignore")

    lat: Optional[Number] = Field(None, description="latitude in degrees, -90..90")
    lng: Optional[Number] = Field(None, description="longitude in degrees, -180..180")
    accuracy: Optional[Number] = Field(None, description="accuracy radius in meters, >= 0")
    heading: Optional[Number] = Field(None, description="degrees clockwise from north, 0..360")
    speed: Optional[Number] = Field(None, description="meters per second, >= 0")
    ts: Optional[Number] = Field(None, description="client timestamp, epoch milliseconds")

    def relay_fields(self) -> dict:
        # only what the client actually sent, names preserved
        return self.model_dump(exclude_unset=True)
