from fastapi import APIRouter, HTTPException, Request

from logging_config import get_logger
from schemas.rooms import HealthResponse, Language, RoomDetailsResponse

logger = get_logger(__name__)

rooms_router = APIRouter(tags=["rooms"])


@rooms_router.get("/rooms/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Get room details.

    Returns:
    - roomId: Room identifier
    - createdAt: When the first participant joined
    - participantCount: Current number of participants
    - participants: Participant ids, names and media flags
    - captions: Captions that have not expired yet
    """
    coordinator = request.app.state.coordinator
    room = coordinator.registry.get_room(room_id)
    if room is None:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    participants = [p.info() for p in room.participants.values()]
    return RoomDetailsResponse(
        room_id=room_id,
        created_at=room.created_at.isoformat(),
        participant_count=len(participants),
        participants=participants,
        captions=coordinator.captions.active_captions(room_id),
    )


@rooms_router.get("/languages", response_model=list[Language])
async def get_languages(request: Request):
    return await request.app.state.coordinator.pipeline.load_languages()


@rooms_router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    coordinator = request.app.state.coordinator
    return HealthResponse(
        status="ok",
        transcription_available=coordinator.pipeline.available,
        room_count=coordinator.registry.room_count(),
        participant_count=coordinator.registry.participant_count(),
        active_transcriptions=coordinator.pipeline.active_count(),
    )
