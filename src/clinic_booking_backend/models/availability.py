'''
Pydantic models for the availability (read path) endpoints.
'''
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class Slot(BaseModel):
    """A bookable window for one staff member and one service."""
    staff_id: UUID
    service_id: UUID
    start_time: datetime
    end_time: datetime
    duration_minutes: int

    model_config = ConfigDict(from_attributes=True)


class StaffAvailability(BaseModel):
    """
    One entry of a multi-staff query. A staff member that could not be
    resolved carries an error message instead of failing the whole query.
    """
    staff_id: UUID
    display_name: Optional[str] = None
    role: Optional[str] = None
    slots: list[Slot] = []
    total_slots: int = 0
    error: Optional[str] = None


class StaffUtilization(BaseModel):
    staff_id: UUID
    range_start: datetime
    range_end: datetime
    open_hours: float
    booked_hours: float
    utilization_percent: float


class AvailableStaff(BaseModel):
    staff_id: UUID
    display_name: str
    role: str
    slot_count: int
    earliest_slot: Slot
