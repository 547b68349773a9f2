'''
Pydantic models for staff absences.
'''
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from ..database.db_enums import AbsenceReason, AbsenceStatus


class AbsenceCreate(BaseModel):
    """
    Pydantic model for validating the JSON payload when requesting an absence.
    New absences always start out as 'pending'.
    """
    staff_id: UUID
    starts_at: AwareDatetime
    ends_at: AwareDatetime
    reason: AbsenceReason
    description: Optional[str] = Field(None, max_length=2000)


class AbsenceDecision(BaseModel):
    """Approve or reject a pending absence."""
    approve: bool
    comment: Optional[str] = Field(None, max_length=2000)


class AbsenceRead(BaseModel):
    id: UUID
    staff_id: UUID
    starts_at: datetime
    ends_at: datetime
    reason: AbsenceReason
    status: AbsenceStatus
    description: Optional[str] = None
    created_by: Optional[UUID] = None
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    approval_comment: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
