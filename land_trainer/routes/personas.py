import asyncio
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from land_trainer.db.database import get_all_personas
from land_trainer.errors import TrainerError
from land_trainer.routes.auth import get_current_user
from land_trainer.routes.deps import get_session_service, http_error
from land_trainer.sessions.service import TrainingSessionService

router = APIRouter(prefix="/personas", tags=["personas"])


class CharacteristicsUpdateRequest(BaseModel):
    characteristics: Dict[str, Any]


@router.get("")
async def list_personas(user: dict = Depends(get_current_user)):
    return await asyncio.to_thread(get_all_personas)


@router.post("/{persona_id}/agent")
async def provision_persona_agent(
    persona_id: str,
    user: dict = Depends(get_current_user),
    service: TrainingSessionService = Depends(get_session_service),
):
    """Create the persona's voice agent if it does not have one yet"""
    try:
        return await asyncio.to_thread(service.provision_agent, persona_id)
    except TrainerError as e:
        raise http_error(e)


@router.put("/{persona_id}/characteristics")
async def update_persona_characteristics(
    persona_id: str,
    request: CharacteristicsUpdateRequest,
    user: dict = Depends(get_current_user),
    service: TrainingSessionService = Depends(get_session_service),
):
    """Replace the persona's traits and push them to its voice agent"""
    try:
        return await asyncio.to_thread(service.update_persona_characteristics, persona_id, request.characteristics)
    except TrainerError as e:
        raise http_error(e)
