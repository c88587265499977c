"""Notifications router — per-user inbox with live push.

Endpoints:
    GET    /api/notifications/{user_id}: paginated list, newest first
    GET    /api/notifications/{user_id}/unread-count: unread total
    POST   /api/notifications/{user_id}: store and push to the live connection
    PUT    /api/notifications/{user_id}/read-all: mark everything read
    PUT    /api/notifications/{user_id}/{notification_id}/read: mark one read
    DELETE /api/notifications/{user_id}/{notification_id}: delete one

The user id comes from the path; authentication is handled upstream.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response

from agora.realtime import RealtimeCoordinator, get_coordinator

from .schemas import NotificationCreate
from .service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _service(request: Request) -> NotificationService:
    return NotificationService.get_instance(request.app.state.settings.notifications.db_path)


@router.get("/{user_id}")
async def list_notifications(
    request: Request,
    user_id: str,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
) -> JSONResponse:
    """List a user's notifications.

    Args:
        user_id: Owner of the notifications.
        page: 1-based page number.
        limit: Page size; defaults to the configured page size and is capped
            at the configured maximum.

    Returns:
        JSON with ``notifications`` and ``pagination`` {page, limit, total}.
    """
    settings = request.app.state.settings.notifications
    limit = min(limit or settings.default_page_size, settings.max_page_size)

    notifications, total = _service(request).list_for_user(user_id, page, limit)
    return JSONResponse({
        "notifications": notifications,
        "pagination": {"page": page, "limit": limit, "total": total},
    })


@router.get("/{user_id}/unread-count")
async def unread_count(request: Request, user_id: str) -> JSONResponse:
    return JSONResponse({"count": _service(request).unread_count(user_id)})


@router.post("/{user_id}", status_code=201)
async def create_notification(
    request: Request,
    user_id: str,
    body: NotificationCreate,
    coordinator: RealtimeCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    """Store a notification, then push it to the user if they are online."""
    notification = _service(request).create(
        user_id=user_id,
        type_=body.type,
        sender_id=body.sender_id,
        reference_id=body.reference_id,
        content=body.content,
    )
    logger.info("[notifications] Created %s for %s (%s)", notification["id"], user_id, body.type)

    await coordinator.notifications.push_to_user(user_id, notification)
    return JSONResponse(notification, status_code=201)


@router.put("/{user_id}/read-all")
async def mark_all_read(request: Request, user_id: str) -> JSONResponse:
    updated = _service(request).mark_all_read(user_id)
    logger.info("[notifications] Marked %d read for %s", updated, user_id)
    return JSONResponse({"updated": updated})


@router.put("/{user_id}/{notification_id}/read")
async def mark_read(request: Request, user_id: str, notification_id: str) -> JSONResponse:
    updated = _service(request).mark_read(user_id, notification_id)
    if updated is None:
        return JSONResponse({"error": "Notification not found"}, status_code=404)
    return JSONResponse(updated)


@router.delete("/{user_id}/{notification_id}", status_code=204)
async def delete_notification(request: Request, user_id: str, notification_id: str) -> Response:
    if not _service(request).delete(user_id, notification_id):
        return JSONResponse({"error": "Notification not found"}, status_code=404)
    logger.info("[notifications] Deleted %s for %s", notification_id, user_id)
    return Response(status_code=204)
