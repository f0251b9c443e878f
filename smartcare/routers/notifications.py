# smartcare/routers/notifications.py
from typing import List

from fastapi import APIRouter, Depends, Query

from .. import schemas, security
from ..dependencies import get_coordinator
from ..services.appointment_service import AppointmentCoordinator
from ..store import StoreError
from .appointments import http_error

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
)


@router.get("", response_model=List[schemas.NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.get_current_user),
):
    try:
        notifications = coordinator.in_app.list_for_user(current_user.user_id, unread_only=unread_only, limit=limit)
    except StoreError as e:
        raise http_error(e) from e
    return [
        schemas.NotificationResponse(**{**item, "metadata": item.get("metadata") or {}})
        for item in notifications
    ]
