from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import CreateRoomResponse, RoomDetailsResponse
from constants import PUBLIC_BASE_URL
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/api/rooms", tags=["rooms"])


@rooms_router.post("", status_code=201, response_model=CreateRoomResponse)
async def create_room(request: Request):
    # Response 201: { "token": "3f1c...", "link": "https://maps.example.com/r/3f1c...", "expiresInMinutes": 120 }
    client_host = request.client.host if request.client else "unknown"
    registry = request.app.state.registry
    token = registry.create_room()
    link = f"{PUBLIC_BASE_URL}/r/{token}"
    logger.info(f"Room {token} issued to {client_host}")
    return CreateRoomResponse(
        token=token,
        link=link,
        expiresInMinutes=registry.ttl_minutes,
    )


@rooms_router.get("/{token}", response_model=RoomDetailsResponse)
async def get_room_details(token: str, request: Request):
    """
    Room status for a shared link.

    Returns:
    - active: whether the link still opens the room
    - createdAt / expiresAt: ISO timestamps (UTC)
    - count: connections currently in the room
    """
    registry = request.app.state.registry
    room = registry.get_room(token)
    if room is None:
        logger.warning(f"Room details failed: Room {token} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    return RoomDetailsResponse(
        token=token,
        active=room.is_active(registry.clock()),
        createdAt=room.created_at.isoformat(),
        expiresAt=room.expires_at.isoformat(),
        count=request.app.state.coordinator.member_count(token),
    )
