import asyncio
import contextlib
import logging
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, WebSocket, WebSocketDisconnect, status
from sqlmodel import Session
from pydantic import BaseModel

from app.db.session import get_session
from app.models.notification import NotificationKind, NotificationType
from app.models.profile import Profile
from app.routers.auth import get_current_profile, resolve_profile
from app.services.notification import NotificationService, feed

logger = logging.getLogger(__name__)

router = APIRouter()

class NotificationResponse(BaseModel):
    id: int
    title: str
    message: str
    type: NotificationType
    kind: NotificationKind
    related_id: Optional[int]
    is_read: bool
    created_at: datetime

class UnreadCount(BaseModel):
    unread_count: int

def get_notification_service(session: Session = Depends(get_session)) -> NotificationService:
    return NotificationService(session)

@router.get("/", response_model=List[NotificationResponse])
def list_notifications(
    limit: Optional[int] = Query(None, ge=1),
    current_profile: Profile = Depends(get_current_profile),
    service: NotificationService = Depends(get_notification_service)
):
    """Newest first, capped at the configured page size"""
    return service.list_recent(current_profile.id, limit)

@router.get("/unread-count", response_model=UnreadCount)
def unread_count(
    current_profile: Profile = Depends(get_current_profile),
    service: NotificationService = Depends(get_notification_service)
):
    return {"unread_count": service.unread_count(current_profile.id)}

@router.post("/read-all", response_model=UnreadCount)
def mark_all_read(
    current_profile: Profile = Depends(get_current_profile),
    service: NotificationService = Depends(get_notification_service)
):
    service.mark_all_read(current_profile.id)
    return {"unread_count": 0}

@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    current_profile: Profile = Depends(get_current_profile),
    service: NotificationService = Depends(get_notification_service)
):
    return service.mark_read(current_profile.id, notification_id)

@router.delete("/{notification_id}", status_code=204)
def delete_notification(
    notification_id: int,
    current_profile: Profile = Depends(get_current_profile),
    service: NotificationService = Depends(get_notification_service)
):
    service.delete(current_profile.id, notification_id)
    return Response(status_code=204)


@router.websocket("/ws")
async def notification_stream(websocket: WebSocket, token: Optional[str] = None, session: Session = Depends(get_session)):
    """
    Change feed for the authenticated profile.

    Each message tells the client to re-fetch; inserts that arrive while a
    message is being sent are folded into the next one.
    """
    profile = resolve_profile(token, session)
    if profile is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    profile_id = profile.id
    session.close()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = feed.subscribe(profile_id, lambda ev: loop.call_soon_threadsafe(queue.put_nowait, ev))
    await websocket.accept()
    logger.info(f"Notification stream opened for profile {profile_id}")

    async def forward():
        while True:
            events = [await queue.get()]
            while not queue.empty():
                events.append(queue.get_nowait())
            await websocket.send_json({
                "event": "INSERT",
                "table": "notification",
                "notification_ids": [ev.notification_id for ev in events],
            })

    sender = asyncio.create_task(forward())
    try:
        # Client messages are ignored; receiving only detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        sender.cancel()
        # A send to a client that already left ends the task with an error
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await sender
        logger.info(f"Notification stream closed for profile {profile_id}")
