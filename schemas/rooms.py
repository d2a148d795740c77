from pydantic import BaseModel
from typing import Optional


class RoomDetailsResponse(BaseModel):
    room_id: str
    participants_count: int
    max_participants: Optional[int]
    is_full: bool


class HealthResponse(BaseModel):
    status: str
    uptime: float
    rooms: int
    connections: int
