"""
Notifications Router — the persisted feed, with relative times derived per read.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from alerts.store import NotificationFeed
from api.deps import get_cycle_runner, get_feed
from workers.alert_cycle import AlertCycleRunner

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    timestamp: int
    severity: str
    productId: str | None = None
    source: str | None = None
    relativeTime: str
    formattedTime: str


class RefreshResponse(BaseModel):
    cycle: dict
    notifications: list[NotificationResponse]


@router.get("/", response_model=list[NotificationResponse])
async def list_notifications(feed: NotificationFeed = Depends(get_feed)):
    return await feed.read()


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_notifications(
    runner: AlertCycleRunner = Depends(get_cycle_runner),
    feed: NotificationFeed = Depends(get_feed),
):
    """Run an alert cycle now, then return the feed as persisted."""
    result = await runner.refresh()
    return {"cycle": result.to_dict(), "notifications": await feed.read()}


@router.delete("/", status_code=204)
async def clear_notifications(feed: NotificationFeed = Depends(get_feed)):
    if not await feed.clear():
        raise HTTPException(status_code=503, detail="Notification store unavailable")


@router.delete("/{notification_id}", status_code=204)
async def dismiss_notification(notification_id: str, feed: NotificationFeed = Depends(get_feed)):
    if not await feed.dismiss(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
