"""Debate management and WebSocket endpoints."""

import asyncio
import contextlib
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect

from web.debate_manager import DebateManager
from web.debate_reponse import DebateResponse, InterventionResponse, StatusResponse
from web.debate_setup_request import DebateSetupRequest, InterventionRequest, StopRequest
from web.message_response import MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")
ws_router = APIRouter()


def get_debate_manager(request: Request) -> DebateManager:
    """Debate manager created by the application lifespan."""
    return request.app.state.debate_manager


def _debate_response(debate_manager: DebateManager, debate_id: str) -> DebateResponse:
    record = debate_manager.get_debate(debate_id)
    return DebateResponse.from_record(
        record,
        flow_mode=debate_manager.store.get_flow_mode(debate_id),
        utterance_count=len(debate_manager.store.find_utterances(debate_id)),
    )


@router.post("/debates", response_model=DebateResponse)
async def create_debate(
    setup: DebateSetupRequest, debate_manager: DebateManager = Depends(get_debate_manager)
):
    """Create a new debate."""
    record = await debate_manager.create_debate(setup)
    return _debate_response(debate_manager, record.id)


@router.get("/debates", response_model=list[DebateResponse])
async def list_debates(
    limit: int = 20, offset: int = 0, debate_manager: DebateManager = Depends(get_debate_manager)
):
    """List debates, newest first."""
    if limit < 1 or limit > 100:
        limit = 20
    offset = max(offset, 0)
    return [
        _debate_response(debate_manager, record.id)
        for record in debate_manager.list_debates(limit=limit, offset=offset)
    ]


@router.get("/debates/{debate_id}", response_model=DebateResponse)
async def get_debate(debate_id: str, debate_manager: DebateManager = Depends(get_debate_manager)):
    """Get debate status."""
    return _debate_response(debate_manager, debate_id)


@router.delete("/debates/{debate_id}", response_model=StatusResponse)
async def delete_debate(debate_id: str, debate_manager: DebateManager = Depends(get_debate_manager)):
    """Delete a finished or never-started debate."""
    debate_manager.delete_debate(debate_id)
    return StatusResponse(status="deleted", debate_id=debate_id)


@router.post("/debates/{debate_id}/start", response_model=StatusResponse)
async def start_debate(debate_id: str, debate_manager: DebateManager = Depends(get_debate_manager)):
    """Start a debate."""
    await debate_manager.start_debate(debate_id)
    return StatusResponse(status="started", debate_id=debate_id)


@router.post("/debates/{debate_id}/pause", response_model=StatusResponse)
async def pause_debate(debate_id: str, debate_manager: DebateManager = Depends(get_debate_manager)):
    debate_manager.pause_debate(debate_id)
    return StatusResponse(status="paused", debate_id=debate_id)


@router.post("/debates/{debate_id}/resume", response_model=StatusResponse)
async def resume_debate(debate_id: str, debate_manager: DebateManager = Depends(get_debate_manager)):
    debate_manager.resume_debate(debate_id)
    return StatusResponse(status="resumed", debate_id=debate_id)


@router.post("/debates/{debate_id}/stop", response_model=StatusResponse)
async def stop_debate(
    debate_id: str,
    body: StopRequest | None = None,
    debate_manager: DebateManager = Depends(get_debate_manager),
):
    """Stop a running debate; the partial transcript is kept."""
    debate_manager.stop_debate(debate_id, body.reason if body else None)
    return StatusResponse(status="stopped", debate_id=debate_id)


@router.post("/debates/{debate_id}/continue", response_model=StatusResponse)
async def continue_debate(debate_id: str, debate_manager: DebateManager = Depends(get_debate_manager)):
    """Release a step-mode debate waiting after an utterance."""
    debate_manager.continue_debate(debate_id)
    return StatusResponse(status="continued", debate_id=debate_id)


@router.post("/debates/{debate_id}/interventions", response_model=InterventionResponse)
async def create_intervention(
    debate_id: str,
    request: InterventionRequest,
    debate_manager: DebateManager = Depends(get_debate_manager),
):
    """Submit a user intervention and return the speaker's answer."""
    intervention = await debate_manager.intervene(debate_id, request)
    return InterventionResponse.from_intervention(intervention)


@router.get("/debates/{debate_id}/utterances", response_model=list[MessageResponse])
async def get_utterances(debate_id: str, debate_manager: DebateManager = Depends(get_debate_manager)):
    return [MessageResponse.from_utterance(u) for u in debate_manager.get_utterances(debate_id)]


@router.get("/debates/{debate_id}/transcript")
async def get_transcript(debate_id: str, debate_manager: DebateManager = Depends(get_debate_manager)):
    """Final transcript, or the transcript so far for a debate still running."""
    try:
        return debate_manager.get_transcript(debate_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to build transcript for {debate_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@ws_router.websocket("/ws/debate/{debate_id}")
async def websocket_endpoint(websocket: WebSocket, debate_id: str):
    """WebSocket endpoint for real-time debate updates."""
    await websocket.accept()

    debate_manager: DebateManager = websocket.app.state.debate_manager
    if debate_manager.store.find_by_id(debate_id) is None:
        await websocket.send_json({"type": "error", "message": "Debate not found"})
        await websocket.close()
        return

    broadcaster = debate_manager.broadcaster
    sender = asyncio.create_task(broadcaster.stream(debate_id, websocket))
    try:
        while True:
            # Keep connection alive; client messages are ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for debate {debate_id}")
    finally:
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
        broadcaster.remove_connection(debate_id, websocket)
