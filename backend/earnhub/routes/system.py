"""Public platform configuration."""

from fastapi import APIRouter

from ..database import Database
from ..system import get_system_config

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/config")
async def public_config(db: Database):
    """Feature flags, maintenance state and global alert."""
    return await get_system_config(db)
