"""Notification dispatch for scheduling events via FCM."""

import asyncio
from enum import Enum
from typing import Any

import structlog
from firebase_admin import messaging

from app.core.firebase import is_firebase_initialized

logger = structlog.get_logger(__name__)


class NotificationEvent(str, Enum):
    """Scheduling events that reach patients, doctors or admins."""

    APPOINTMENT_CREATED = "appointment_created"
    DOCTOR_ASSIGNED = "doctor_assigned"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"
    APPOINTMENT_REASSIGNED = "appointment_reassigned"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    APPOINTMENT_COMPLETED = "appointment_completed"
    ORGANIZATION_BOOKING_CREATED = "organization_booking_created"
    ORGANIZATION_BOOKING_AUTO_COMPLETED = "organization_booking_auto_completed"


_TEMPLATES: dict[NotificationEvent, tuple[str, str]] = {
    NotificationEvent.APPOINTMENT_CREATED: (
        "Appointment Requested",
        "Your {consultation_mode} consultation on {date} at {time} has been requested.",
    ),
    NotificationEvent.DOCTOR_ASSIGNED: (
        "New Appointment Assigned",
        "You have a {consultation_mode} consultation with {patient_name} on {date} at {time}.",
    ),
    NotificationEvent.APPOINTMENT_CONFIRMED: (
        "Appointment Confirmed",
        "Your appointment with {doctor_name} on {date} at {time} is confirmed.",
    ),
    NotificationEvent.APPOINTMENT_REASSIGNED: (
        "Appointment Reassigned",
        "Your appointment on {date} at {time} is now with {doctor_name}.",
    ),
    NotificationEvent.APPOINTMENT_CANCELLED: (
        "Appointment Cancelled",
        "The appointment on {date} at {time} has been cancelled.",
    ),
    NotificationEvent.APPOINTMENT_COMPLETED: (
        "Appointment Completed",
        "Your appointment on {date} at {time} has been marked as completed.",
    ),
    NotificationEvent.ORGANIZATION_BOOKING_CREATED: (
        "Organization Booking Received",
        "{organization_name} requested a camp on {preferred_date}.",
    ),
    NotificationEvent.ORGANIZATION_BOOKING_AUTO_COMPLETED: (
        "Organization Booking Closed",
        "The booking for {organization_name} was closed: {auto_completed_reason}.",
    ),
}


def _recipient_topic(recipient: str) -> str:
    """FCM topic a recipient's devices subscribe to."""
    return f"user_{recipient}"


class NotificationDispatcher:
    """Fire-and-forget notification sender.

    ``notify`` never raises: delivery failures and timeouts are logged and
    dropped, because the scheduling write they follow has already committed.
    """

    def __init__(self, timeout: float = 10.0):
        """Initialize dispatcher with a per-dispatch timeout."""
        self.timeout = timeout

    async def notify(self, event: NotificationEvent, payload: dict[str, Any]) -> None:
        """
        Send an event to each recipient listed in ``payload["recipients"]``.

        Args:
            event: Scheduling event
            payload: Template fields plus ``recipients`` (user or doctor ids)
        """
        recipients = [str(r) for r in payload.get("recipients", []) if r]
        if not recipients:
            logger.debug("notification_without_recipients", notification_event=event.value)
            return

        if not is_firebase_initialized():
            logger.debug(
                "notification_skipped_firebase_uninitialized",
                notification_event=event.value,
            )
            return

        try:
            await asyncio.wait_for(self._dispatch(event, payload, recipients), timeout=self.timeout)
            logger.info(
                "notification_sent",
                notification_event=event.value,
                recipients=len(recipients),
            )
        except TimeoutError:
            logger.warning(
                "notification_timeout",
                notification_event=event.value,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning(
                "notification_failed",
                notification_event=event.value,
                error=str(e),
            )

    async def _dispatch(
        self,
        event: NotificationEvent,
        payload: dict[str, Any],
        recipients: list[str],
    ) -> None:
        title, body_template = _TEMPLATES[event]
        fields = {key: value for key, value in payload.items() if key != "recipients"}
        body = body_template.format_map(_Defaulting(fields))
        data = {key: str(value) for key, value in fields.items() if value is not None}
        data["event"] = event.value

        for recipient in recipients:
            message = messaging.Message(
                notification=messaging.Notification(title=title, body=body),
                data=data,
                topic=_recipient_topic(recipient),
            )
            await asyncio.to_thread(messaging.send, message)


class _Defaulting(dict):
    """Template mapping that renders missing fields as blanks."""

    def __missing__(self, key: str) -> str:
        return ""
