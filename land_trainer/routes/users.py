import asyncio

from fastapi import APIRouter, Depends, HTTPException, status

from land_trainer.db.database import get_user_profile
from land_trainer.routes.auth import get_current_user

router = APIRouter(tags=["users"])


@router.get("/user")
async def get_user(user: dict = Depends(get_current_user)):
    """Sessions remaining, completed count and best grade for the caller"""
    profile = await asyncio.to_thread(get_user_profile, user["id"])
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return profile
