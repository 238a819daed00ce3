from pydantic import BaseModel


class CreateRoomResponse(BaseModel):
    token: str
    link: str
    expiresInMinutes: int

class RoomDetailsResponse(BaseModel):
    token: str
    active: bool
    createdAt: str
    expiresAt: str
    count: int
