from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import RoomDetailsResponse
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Get the live participant count of a room.

    Returns:
    - room_id: Room code
    - participants_count: Current number of joined connections
    - max_participants: Configured ceiling, null when unlimited
    - is_full: Whether a new join would be refused
    """
    registry = request.app.state.registry
    members = await registry.members(room_id)
    if not members:
        logger.info(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    max_participants = registry.max_participants
    is_full = max_participants is not None and len(members) >= max_participants
    logger.debug(f"Room details retrieved for {room_id}: {len(members)}/{max_participants} participants")

    return RoomDetailsResponse(
        room_id=room_id,
        participants_count=len(members),
        max_participants=max_participants,
        is_full=is_full,
    )
