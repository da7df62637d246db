"""
Pizzeria — Notification center API
"""
from fastapi import APIRouter, Depends, HTTPException

from pizzeria.api.deps import current_user, get_notification_service
from pizzeria.models import User
from pizzeria.schemas.user import NotificationFeed
from pizzeria.services.notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationFeed)
async def list_notifications(
    user: User = Depends(current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return await service.list_for_user(user.id)


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    user: User = Depends(current_user),
    service: NotificationService = Depends(get_notification_service),
):
    if not await service.mark_read(notification_id, user.id):
        raise HTTPException(status_code=404, detail="Notification not found.")
    return {"read": True}


@router.post("/read-all")
async def mark_all_read(
    user: User = Depends(current_user),
    service: NotificationService = Depends(get_notification_service),
):
    updated = await service.mark_all_read(user.id)
    return {"updated": updated}
