import asyncio
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from land_trainer.errors import TrainerError
from land_trainer.routes.auth import get_current_user
from land_trainer.routes.deps import get_session_service, http_error
from land_trainer.sessions.service import TrainingSessionService

router = APIRouter(prefix="/training_sessions", tags=["training_sessions"])


# Pydantic Models
class CreateTrainingSessionRequest(BaseModel):
    persona_id: str
    parcel_id: str


class EndConversationRequest(BaseModel):
    conversation_id: Optional[str] = None
    session_duration_in_seconds: Optional[int] = Field(default=None, gt=0)


class DynamicVariables(BaseModel):
    parcel_brief: str


class StartConversationResponse(BaseModel):
    token: str
    agent_id: str
    conversation_id: str
    dynamic_variables: DynamicVariables


@router.get("")
async def list_training_sessions(
    user: dict = Depends(get_current_user),
    service: TrainingSessionService = Depends(get_session_service),
) -> List[Dict[str, Any]]:
    """The caller's sessions, newest first"""
    return await asyncio.to_thread(service.list_sessions, user["id"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_training_session(
    request: CreateTrainingSessionRequest,
    user: dict = Depends(get_current_user),
    service: TrainingSessionService = Depends(get_session_service),
):
    """Create a pending session for a persona and parcel"""
    try:
        return await asyncio.to_thread(service.create_session, user["id"], request.persona_id, request.parcel_id)
    except TrainerError as e:
        raise http_error(e)


@router.get("/{session_id}")
async def get_training_session(
    session_id: str,
    user: dict = Depends(get_current_user),
    service: TrainingSessionService = Depends(get_session_service),
):
    """Current state, including score, grade and feedback once available"""
    try:
        return await asyncio.to_thread(service.get_session, user["id"], session_id)
    except TrainerError as e:
        raise http_error(e)


@router.post("/{session_id}/start_conversation", response_model=StartConversationResponse)
async def start_conversation(
    session_id: str,
    user: dict = Depends(get_current_user),
    service: TrainingSessionService = Depends(get_session_service),
):
    """Provision the persona's agent if needed and mint a conversation token"""
    try:
        return await asyncio.to_thread(service.start_conversation, user["id"], session_id)
    except TrainerError as e:
        raise http_error(e)


@router.post("/{session_id}/end_conversation", status_code=status.HTTP_202_ACCEPTED)
async def end_conversation(
    session_id: str,
    request: Optional[EndConversationRequest] = None,
    user: dict = Depends(get_current_user),
    service: TrainingSessionService = Depends(get_session_service),
):
    """Hand the conversation off for feedback generation"""
    request = request or EndConversationRequest()
    try:
        return await asyncio.to_thread(
            service.end_conversation,
            user["id"],
            session_id,
            conversation_id=request.conversation_id,
            session_duration_in_seconds=request.session_duration_in_seconds,
        )
    except TrainerError as e:
        raise http_error(e)
