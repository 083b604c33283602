"""
Notifications Router - in-app notifications for a user
"""
from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from staff_verify.dependencies import get_db
from staff_verify.schemas import NotificationOut
from staff_verify.services.notification_service import list_notifications

router = APIRouter()


@router.get("/{user_id}", response_model=List[NotificationOut])
async def get_notifications(
    user_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db)
):
    """Notifications for a user, newest first"""
    return list_notifications(db, user_id, limit=limit)
