"""
backend/horaly/services/events.py

Event emitter: pushes appointment status events to a Redis queue for the
notification dispatcher (WhatsApp / e-mail delivery lives there).

Queue:
- events:p2p: instant delivery to the customer / establishment

Delivery is fire-and-forget: a failure is logged and never affects the
appointment state.
"""

import json
import time
import logging

from pydantic import ValidationError

from .. import redis_client as redis_module
from ..models.tables import Appointments, Establishments
from ..schemas.establishment_settings import NotificationSettings

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"

STATUS_EVENTS = {
    "pending": "appointment_pending",
    "confirmed": "appointment_confirmed",
    "cancelled": "appointment_cancelled",
}


def emit_event(event_type: str, payload: dict) -> None:
    """
    Emit a p2p event (instant delivery).

    Pushed to Redis list `events:p2p` for the consumer loop.
    """
    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    client = redis_module.redis_client
    if client is None:
        logger.info(f"Event {event_type} not queued (redis not configured): {event}")
        return
    try:
        client.rpush(P2P_QUEUE, json.dumps(event, default=str))
        logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
    except Exception as e:
        logger.error(f"Failed to emit event {event_type}: {e}")


def notification_settings_for(establishment: Establishments) -> NotificationSettings:
    """Typed notification settings; invalid stored settings fall back to defaults."""
    try:
        return NotificationSettings.model_validate(establishment.notification_settings or {})
    except ValidationError as e:
        logger.warning(
            f"Invalid notification_settings for establishment {establishment.id}: {e}"
        )
        return NotificationSettings()


def notify_status_change(
    establishment: Establishments,
    appointment: Appointments,
    reason: str | None = None,
) -> None:
    """Emit the event matching the appointment's current status, if enabled."""
    event_type = STATUS_EVENTS.get(appointment.status)
    if event_type is None:
        return

    prefs = notification_settings_for(establishment)
    if not prefs.allows(event_type):
        logger.info(
            f"{event_type} suppressed for appointment={appointment.id} "
            f"(disabled in notification settings)"
        )
        return

    payload = {
        "appointment_id": appointment.id,
        "establishment_id": establishment.id,
        "status": appointment.status,
        "reason": reason,
        "scheduled_at": appointment.scheduled_at.isoformat(),
    }
    if event_type == "appointment_confirmed" and prefs.reminder_enabled:
        payload["reminder_hours_before"] = prefs.reminder_hours_before

    emit_event(event_type, payload)
