'''
Notification dispatch. Delivery (mail, SMS, push) is owned elsewhere; the
engine publishes booking outcomes and never waits on, or fails because of,
their delivery.
'''
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol
from uuid import UUID

from ..common.logger import log


@dataclass
class BookingOutcome:
    event: str  # booking_created, booking_rejected, booking_cancelled, booking_status_changed
    booking_id: Optional[UUID] = None
    staff_id: Optional[UUID] = None
    patient_id: Optional[UUID] = None
    details: dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    async def dispatch(self, outcome: BookingOutcome) -> None:
        ...


class LogNotificationDispatcher:
    """Default dispatcher: logs the outcome for the delivery pipeline to pick up."""
    async def dispatch(self, outcome: BookingOutcome) -> None:
        log.info(f"Notification queued: {outcome.event} booking={outcome.booking_id} staff={outcome.staff_id} patient={outcome.patient_id}")


def get_notification_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency providing the notification dispatcher."""
    return LogNotificationDispatcher()
