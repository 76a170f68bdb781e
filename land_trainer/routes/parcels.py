import asyncio

from fastapi import APIRouter, Depends

from land_trainer.db.database import get_all_parcels
from land_trainer.routes.auth import get_current_user

router = APIRouter(prefix="/parcels", tags=["parcels"])


@router.get("")
async def list_parcels(user: dict = Depends(get_current_user)):
    return await asyncio.to_thread(get_all_parcels)
