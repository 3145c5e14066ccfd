import asyncio
import json
import logging
import uuid
from typing import Any, Dict, Optional, Sequence
from sqlmodel import select

from app.config import settings
from app.core.geofencing import DestinationPoint, describe_position
from app.models.emergency import PanicAlert
from app.utils.notifications import EmailService, WebhookService
from app.utils.timeutils import ensure_utc

logger = logging.getLogger(__name__)

class EmergencyAlertService:
    def __init__(
        self,
        email_service: Optional[EmailService] = None,
        webhook_service: Optional[WebhookService] = None
    ):
        self.email_service = email_service or EmailService()
        self.webhook_service = webhook_service or WebhookService()

    def build_alert_data(
        self,
        alert: PanicAlert,
        reporter: Dict[str, Any],
        destinations: Sequence[DestinationPoint] = ()
    ) -> Dict[str, Any]:
        created_at = ensure_utc(alert.created_at)
        return {
            "alert_id": str(alert.id),
            "status": getattr(alert.status, "value", alert.status),
            "location": {
                "latitude": alert.latitude,
                "longitude": alert.longitude,
                "label": describe_position(alert.latitude, alert.longitude, destinations)
            },
            "timestamp": created_at.isoformat() if created_at else None,
            "message": alert.message or "Panic button pressed",
            "reporter": reporter
        }

    async def handle_panic_alert(self, alert_data: Dict[str, Any]) -> bool:
        """
        Fan a panic alert out to every configured responder channel.

        Returns True when at least one channel accepted the alert.
        """
        logger.critical(f"PANIC ALERT {alert_data['alert_id']}: {json.dumps(alert_data, default=str)}")

        email_result, webhook_result = await asyncio.gather(
            self._send_email_notifications(alert_data),
            self.webhook_service.post({"type": "panic_alert", **alert_data})
        )

        delivered = email_result or webhook_result
        if not delivered:
            logger.critical(f"FAILED to notify any responder for alert {alert_data['alert_id']}")
        return delivered

    async def _send_email_notifications(self, alert_data: Dict[str, Any]) -> bool:
        """Email every configured responder address"""
        if not settings.RESPONDER_EMAILS:
            return False

        results = await self.email_service.send_bulk_email(
            list(settings.RESPONDER_EMAILS),
            f"🚨 PANIC ALERT - {alert_data['location']['label']}",
            self.format_alert_text(alert_data),
            self.format_alert_html(alert_data)
        )
        return any(results.values())

    def format_alert_text(self, alert_data: Dict[str, Any]) -> str:
        """Format plain-text alert for responders"""
        location = alert_data["location"]
        reporter = alert_data["reporter"]

        return f"""
PANIC ALERT DETAILS
===================
Alert ID: {alert_data['alert_id']}
Time: {alert_data['timestamp']}

TOURIST:
- Name: {reporter.get('full_name') or 'Unknown'}
- Phone: {reporter.get('phone') or 'Unknown'}
- Emergency contact: {reporter.get('emergency_contact') or 'None'}

LOCATION:
- {location['label']}
- Coordinates: {location['latitude']}, {location['longitude']}

MESSAGE: {alert_data['message']}

ACTION REQUIRED: Immediate response and assistance needed.
Helpline: {settings.HELPLINE_PHONE}
"""

    def format_alert_html(self, alert_data: Dict[str, Any]) -> str:
        """Format email notification with full details"""
        location = alert_data["location"]
        reporter = alert_data["reporter"]

        return f"""
<h2>🚨 PANIC ALERT</h2>

<p><strong>Time:</strong> {alert_data['timestamp']}</p>
<p><strong>Alert ID:</strong> {alert_data['alert_id']}</p>

<h3>Tourist:</h3>
<ul>
<li><strong>Name:</strong> {reporter.get('full_name') or 'Unknown'}</li>
<li><strong>Phone:</strong> {reporter.get('phone') or 'Unknown'}</li>
</ul>

<h3>Location Details:</h3>
<ul>
<li><strong>Place:</strong> {location['label']}</li>
<li><strong>Coordinates:</strong> {location['latitude']}, {location['longitude']}</li>
</ul>

<h3>Message:</h3>
<p>{alert_data['message']}</p>

<hr>
<small>This is an automated alert from the Tourist Safety system.</small>
"""

# Global instance
emergency_service = EmergencyAlertService()

async def send_panic_notifications(
    alert_id: uuid.UUID,
    reporter: Dict[str, Any],
    destinations: Sequence[DestinationPoint] = ()
) -> bool:
    """
    Notify responders about a stored panic alert and record the outcome
    Called as a background task from the emergency API endpoint
    """
    from app.database import AsyncSessionLocal

    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(PanicAlert).where(PanicAlert.id == alert_id)
        )
        alert = result.scalar_one_or_none()
        if alert is None:
            logger.error(f"Panic alert {alert_id} vanished before notification")
            return False

        alert_data = emergency_service.build_alert_data(alert, reporter, destinations)
        success = await emergency_service.handle_panic_alert(alert_data)

        alert.authorities_notified = success
        db.add(alert)
        await db.commit()

        return success
