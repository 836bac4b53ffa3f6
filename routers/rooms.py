from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import CreateRoomRequest, CreateRoomResponse, RoomDetailsResponse, RoomSummary
from errors import InvalidInput, RoomNotFound
from typing import List
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


def ws_url_for(request: Request) -> str:
    # Replace http/https with ws/wss
    base_url = str(request.base_url).rstrip('/')
    ws_base = base_url.replace("http://", "ws://").replace("https://", "wss://")
    return f"{ws_base}/ws"


@rooms_router.get("/", response_model=List[RoomSummary])
async def list_rooms(request: Request):
    rooms = await request.app.state.registry.list_rooms()
    logger.debug(f"Room list request: {len(rooms)} rooms")
    return rooms


@rooms_router.post("/", response_model=CreateRoomResponse, status_code=201)
async def create_room(room: CreateRoomRequest, request: Request):
    # { "name": "Late Night Chill", "capacity": 4, "password": "optional" }
    # Response 201: { "room_id": "7hd92f...", "ws_url": "ws://host/ws" }
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room creation request from {client_host}, name: {room.name}, capacity: {room.capacity}")
    try:
        room_id = await request.app.state.binder.create_room(room.name, room.capacity, room.password)
    except InvalidInput as e:
        logger.warning(f"Room creation failed: {e.detail}")
        raise HTTPException(status_code=400, detail={"reason": e.reason, "detail": e.detail})
    return CreateRoomResponse(room_id=room_id, ws_url=ws_url_for(request))


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Get room details including who is currently in it.

    Returns:
    - id, name, count, capacity, has_password: the public room summary
    - created_at: Room creation timestamp
    - is_full: Whether room has reached capacity
    - participants: peer ids and display names, in join order
    """
    try:
        room = await request.app.state.registry.get_room(room_id)
    except RoomNotFound as e:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail={"reason": e.reason, "detail": e.detail})

    logger.info(f"Room details retrieved for {room_id}: {room.count}/{room.capacity} participants")
    return RoomDetailsResponse(
        **room.summary().model_dump(),
        created_at=room.created_at,
        is_full=room.is_full,
        participants=[p.info() for p in room.participants],
    )
