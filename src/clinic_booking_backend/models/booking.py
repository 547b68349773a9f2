'''
Pydantic models for the booking (write path) endpoints.
'''
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from ..database.db_enums import BookingStatus, BookingType, ResourceType


class BookingRequest(BaseModel):
    """
    Pydantic model for validating the JSON payload when booking a slot.
    The location is derived from the staff member.
    """
    service_id: UUID
    staff_id: UUID
    patient_id: UUID
    start_time: AwareDatetime
    end_time: AwareDatetime
    booking_type: BookingType = BookingType.INTERNAL
    consent_given: bool = False


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class BookingCheckResult(BaseModel):
    """Outcome of a dry-run validation. Nothing is reserved."""
    available: bool
    reason: Optional[str] = None
    error_kind: Optional[str] = None


class BookingResourceRead(BaseModel):
    resource_type: ResourceType
    resource_id: UUID

    model_config = ConfigDict(from_attributes=True)


class BookingRead(BaseModel):
    id: UUID
    service_id: UUID
    patient_id: UUID
    location_id: UUID
    staff_id: UUID
    room_id: Optional[UUID] = None
    device_id: Optional[UUID] = None
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    booking_type: BookingType
    consent_given: bool
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    resources: list[BookingResourceRead] = []

    model_config = ConfigDict(from_attributes=True)
