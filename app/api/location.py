from fastapi import APIRouter, Depends, HTTPException, Request, Query
from sqlmodel import select, desc
from typing import List, Any, Dict
from datetime import timedelta
import uuid

from app.config import settings
from app.database import SessionDep
from app.models.location import (
    UserLocation, LocationUpdateRequest, UserLocationRead, ActiveUserLocation,
    ZoneNotification, ZoneNotificationRead
)
from app.models.user import UserAccount, Profile
from app.core.geofencing import InvalidInput, Position, ZoneKind
from app.core.hazards import hazard_registry
from app.core.tracking import proximity_tracker
from app.api.auth import get_current_user, require_responder
from app.api.destinations import load_destination_points
from app.utils.timeutils import utcnow, ensure_utc

router = APIRouter()

@router.post("/update")
async def update_location(
    db: SessionDep,
    request: Request,
    location_data: LocationUpdateRequest,
    current_user: UserAccount = Depends(get_current_user)
) -> Dict[str, Any]:
    now = utcnow()
    destinations = await load_destination_points(db, current_user.id)
    hazard_zones = hazard_registry.snapshot()

    # Evaluate before persisting anything so a rejected update leaves no trace
    try:
        result = await proximity_tracker.update(
            str(current_user.id),
            Position(location_data.latitude, location_data.longitude, now),
            destinations,
            hazard_zones,
        )
    except InvalidInput as e:
        raise HTTPException(status_code=422, detail=str(e))

    location = UserLocation(
        user_id=current_user.id,
        latitude=location_data.latitude,
        longitude=location_data.longitude,
        accuracy=location_data.accuracy,
        created_at=now
    )
    db.add(location)

    titles = {("destination", d.id): d.name for d in destinations}
    titles.update({("hazard", z.id): z.title for z in hazard_zones})
    notifications = []
    for event in result.events:
        notification = ZoneNotification(
            user_id=current_user.id,
            zone_kind=event.zone_kind,
            zone_id=event.id,
            kind=event.kind,
            title=titles.get((event.zone_kind.value, event.id), event.id),
            safety_score=result.safety_score,
            created_at=now
        )
        notifications.append(notification)
        db.add(notification)

    await db.commit()

    websocket_manager = request.app.state.websocket_manager
    await websocket_manager.broadcast({
        "type": "location_update",
        "user_id": str(current_user.id),
        "latitude": location_data.latitude,
        "longitude": location_data.longitude,
        "aggregate_safe": result.aggregate_safe,
        "safety_score": result.safety_score,
        "timestamp": now.isoformat()
    }, user_id=current_user.id)
    for notification in notifications:
        await websocket_manager.broadcast({
            "type": "zone_event",
            "user_id": str(current_user.id),
            "kind": notification.kind.value,
            "zone_kind": notification.zone_kind.value,
            "zone_id": notification.zone_id,
            "title": notification.title,
            "safety_score": notification.safety_score,
            "timestamp": now.isoformat()
        }, user_id=current_user.id)

    return {
        "message": "Location updated successfully",
        "location_id": str(location.id),
        "proximity": result.to_dict(),
        "alerts": [
            _describe_event(n.kind.value, n.zone_kind, n.title) for n in notifications
        ]
    }

def _describe_event(kind: str, zone_kind: ZoneKind, title: str) -> str:
    if zone_kind == ZoneKind.HAZARD:
        if kind == "entered":
            return f"Warning: you have entered a threat zone: {title}"
        return f"You have left the threat zone: {title}"
    if kind == "entered":
        return f"You have arrived at {title}"
    return f"You have left {title}"

@router.get("/safety")
async def get_safety_status(
    current_user: UserAccount = Depends(get_current_user)
) -> Dict[str, Any]:
    snapshot = proximity_tracker.snapshot(str(current_user.id))
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No location received yet")
    return snapshot.to_dict()

@router.get("/history", response_model=List[UserLocationRead])
async def get_location_history(
    db: SessionDep,
    limit: int = Query(default=50, ge=1, le=500),
    current_user: UserAccount = Depends(get_current_user)
):
    result = await db.execute(
        select(UserLocation)
        .where(UserLocation.user_id == current_user.id)
        .order_by(desc(UserLocation.created_at))
        .limit(limit)
    )
    return result.scalars().all()

@router.get("/active", response_model=List[ActiveUserLocation])
async def get_active_locations(
    db: SessionDep,
    current_user: UserAccount = Depends(require_responder)
) -> List[Any]:
    """Latest position of every user seen within the active window"""
    recent_cutoff = utcnow() - timedelta(minutes=settings.ACTIVE_WINDOW_MINUTES)

    result = await db.execute(
        select(UserLocation, UserAccount)
        .join(UserAccount, UserAccount.id == UserLocation.user_id)
        .where(
            UserLocation.created_at >= recent_cutoff,
            UserAccount.is_active == True
        )
        .order_by(desc(UserLocation.created_at))
    )

    latest: Dict[uuid.UUID, Any] = {}
    for location, account in result.all():
        # Rows arrive newest first; keep the first seen per user
        latest.setdefault(location.user_id, (location, account))

    names: Dict[uuid.UUID, str] = {}
    if latest:
        profiles = await db.execute(
            select(Profile).where(Profile.user_id.in_(list(latest)))
        )
        names = {p.user_id: p.full_name for p in profiles.scalars().all()}

    return [
        ActiveUserLocation(
            user_id=user_id,
            email=account.email,
            full_name=names.get(user_id),
            latitude=location.latitude,
            longitude=location.longitude,
            last_updated=ensure_utc(location.created_at)
        )
        for user_id, (location, account) in latest.items()
    ]

@router.get("/notifications", response_model=List[ZoneNotificationRead])
async def list_notifications(
    db: SessionDep,
    unread_only: bool = False,
    current_user: UserAccount = Depends(get_current_user)
):
    query = select(ZoneNotification).where(ZoneNotification.user_id == current_user.id)
    if unread_only:
        query = query.where(ZoneNotification.is_read == False)
    result = await db.execute(query.order_by(desc(ZoneNotification.created_at)))
    return result.scalars().all()

@router.put("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: uuid.UUID,
    db: SessionDep,
    current_user: UserAccount = Depends(get_current_user)
) -> Dict[str, str]:
    notification = await db.get(ZoneNotification, notification_id)
    if notification is None or notification.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Notification not found")

    notification.is_read = True
    db.add(notification)
    await db.commit()
    return {"message": "Notification marked as read"}
