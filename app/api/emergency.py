from fastapi import APIRouter, Depends, HTTPException, BackgroundTasks, Request, Query, status
from sqlmodel import select, desc
from typing import Any, List, Optional
import uuid

from app.database import SessionDep
from app.models.emergency import PanicAlert, PanicRequest, PanicAlertRead, PanicAlertWithReporter, AlertStatus
from app.models.user import UserAccount, Profile
from app.api.auth import get_current_user
from app.api.destinations import load_destination_points
from app.core.emergency_alert import send_panic_notifications
from app.core.geofencing import describe_position
from app.utils.timeutils import utcnow, ensure_utc

router = APIRouter()

@router.post("/panic", status_code=status.HTTP_201_CREATED)
async def trigger_panic_alert(
    db: SessionDep,
    request: Request,
    panic_data: PanicRequest,
    background_tasks: BackgroundTasks,
    current_user: UserAccount = Depends(get_current_user)
) -> dict[str, Any]:
    destinations = await load_destination_points(db, current_user.id)
    label = describe_position(panic_data.latitude, panic_data.longitude, destinations)

    alert = PanicAlert(
        user_id=current_user.id,
        latitude=panic_data.latitude,
        longitude=panic_data.longitude,
        message=panic_data.message or f"Emergency alert near {label}"
    )
    db.add(alert)
    await db.commit()
    await db.refresh(alert)

    profile_result = await db.execute(select(Profile).where(Profile.user_id == current_user.id))
    profile = profile_result.scalar_one_or_none()
    reporter = {
        "user_id": str(current_user.id),
        "email": current_user.email,
        "full_name": profile.full_name if profile else None,
        "phone": profile.phone if profile else None,
        "emergency_contact": profile.emergency_contact if profile else None,
    }

    # Send notifications in background
    background_tasks.add_task(
        send_panic_notifications,
        alert_id=alert.id,
        reporter=reporter,
        destinations=destinations
    )

    websocket_manager = request.app.state.websocket_manager
    await websocket_manager.broadcast({
        "type": "panic_alert",
        "alert_id": str(alert.id),
        "user_id": str(current_user.id),
        "message": alert.message,
        "latitude": alert.latitude,
        "longitude": alert.longitude,
        "label": label,
        "timestamp": ensure_utc(alert.created_at).isoformat()
    }, user_id=current_user.id)

    return {
        "message": "Panic alert sent successfully",
        "alert_id": str(alert.id),
        "location": label,
        "status": alert.status.value
    }

@router.get("/alerts", response_model=List[PanicAlertWithReporter])
async def list_alerts(
    db: SessionDep,
    alert_status: Optional[AlertStatus] = Query(default=None, alias="status"),
    current_user: UserAccount = Depends(get_current_user)
):
    query = select(PanicAlert)
    # Tourists only see their own alerts; responders see everyone's
    if not current_user.is_responder:
        query = query.where(PanicAlert.user_id == current_user.id)
    if alert_status is not None:
        query = query.where(PanicAlert.status == alert_status)

    result = await db.execute(query.order_by(desc(PanicAlert.created_at)))
    alerts = result.scalars().all()

    names = {}
    if alerts:
        profiles = await db.execute(
            select(Profile).where(Profile.user_id.in_(list({alert.user_id for alert in alerts})))
        )
        names = {p.user_id: p.full_name for p in profiles.scalars().all()}

    return [
        PanicAlertWithReporter(**alert.model_dump(), full_name=names.get(alert.user_id))
        for alert in alerts
    ]

@router.put("/alerts/{alert_id}/resolve", response_model=PanicAlertRead)
async def resolve_alert(
    db: SessionDep,
    request: Request,
    alert_id: uuid.UUID,
    current_user: UserAccount = Depends(get_current_user)
):
    alert = await db.get(PanicAlert, alert_id)
    if alert is None or (alert.user_id != current_user.id and not current_user.is_responder):
        raise HTTPException(status_code=404, detail="Alert not found")

    if alert.status != AlertStatus.RESOLVED:
        alert.status = AlertStatus.RESOLVED
        alert.resolved_at = utcnow()
        alert.resolved_by = current_user.id
        db.add(alert)
        await db.commit()
        await db.refresh(alert)

        websocket_manager = request.app.state.websocket_manager
        await websocket_manager.broadcast({
            "type": "panic_alert_resolved",
            "alert_id": str(alert.id),
            "resolved_by": str(current_user.id),
            "timestamp": ensure_utc(alert.resolved_at).isoformat()
        }, user_id=alert.user_id)

    return alert
