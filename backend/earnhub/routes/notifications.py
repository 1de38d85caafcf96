"""Notification inbox routes."""

from fastapi import APIRouter, Query

from ..auth import CurrentUser
from ..database import NOTIFICATIONS_TABLE, Database
from ..errors import NotFoundError

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    auth: CurrentUser,
    db: Database,
    unread: bool = False,
    limit: int = Query(50, ge=1, le=200),
):
    query = db.table(NOTIFICATIONS_TABLE).select("*").eq("user_id", auth.user_id)
    if unread:
        query = query.eq("is_read", False)
    result = query.order("created_at", desc=True).limit(limit).execute()
    return {"notifications": result.data or []}


@router.post("/read-all")
async def mark_all_read(auth: CurrentUser, db: Database):
    result = (
        db.table(NOTIFICATIONS_TABLE)
        .update({"is_read": True})
        .eq("user_id", auth.user_id)
        .eq("is_read", False)
        .execute()
    )
    return {"updated": len(result.data or [])}


@router.post("/{notification_id}/read")
async def mark_read(notification_id: str, auth: CurrentUser, db: Database):
    result = (
        db.table(NOTIFICATIONS_TABLE)
        .update({"is_read": True})
        .eq("id", notification_id)
        .eq("user_id", auth.user_id)
        .execute()
    )
    if not result.data:
        raise NotFoundError("Notification not found")
    return result.data[0]
