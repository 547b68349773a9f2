'''
Absence ledger: staff time off, its approval lifecycle, and the busy time it
contributes to availability.
'''
from datetime import datetime
from typing import Annotated, Iterable, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.clock import Clock, get_clock
from ..common.config import settings
from ..common.exceptions import Conflict, InvalidRange, InvalidStateTransition, NotFound
from ..common.logger import log
from ..core.intervals import Interval, intersect_range
from ..database import models as db_models
from ..database.db_enums import AbsenceStatus
from ..database.engine import get_db_session
from ..models import absence as absence_models
from .audit_service import AuditSink, get_audit_sink
from .directory_service import DirectoryService

# Absences in these states block each other.
BLOCKING_ABSENCE_STATUSES = (AbsenceStatus.PENDING.value, AbsenceStatus.APPROVED.value)


class AbsenceService:
    """
    Service for all business logic related to staff absences.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        directory: Annotated[DirectoryService, Depends(DirectoryService)],
        clock: Annotated[Clock, Depends(get_clock)],
        audit: Annotated[AuditSink, Depends(get_audit_sink)]
    ):
        self.db = db
        self.directory = directory
        self.clock = clock
        self.audit = audit

    # --- Internal Fetchers ---

    async def _get_absence(self, absence_id: UUID) -> db_models.Absences:
        absence = await self.db.get(db_models.Absences, absence_id)
        if not absence:
            log.warning(f"Tried to fetch non-existing absence: {absence_id}")
            raise NotFound(f"Absence {absence_id} not found.", {"absence_id": str(absence_id)})
        return absence

    async def get_overlapping(
        self,
        staff_id: UUID,
        range_start: datetime,
        range_end: datetime,
        statuses: Iterable[str]
    ) -> list[db_models.Absences]:
        stmt = select(db_models.Absences).filter(
            db_models.Absences.staff_id == staff_id,
            db_models.Absences.status.in_(list(statuses)),
            db_models.Absences.starts_at < range_end,
            db_models.Absences.ends_at > range_start
        ).order_by(db_models.Absences.starts_at)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def busy_statuses() -> tuple[str, ...]:
        if settings.INCLUDE_PENDING_ABSENCES:
            return BLOCKING_ABSENCE_STATUSES
        return (AbsenceStatus.APPROVED.value,)

    # --- Ledger ---

    async def busy_intervals(self, staff_id: UUID, range_start: datetime, range_end: datetime) -> list[Interval]:
        """Absence time of the staff member within [range_start, range_end)."""
        absences = await self.get_overlapping(staff_id, range_start, range_end, self.busy_statuses())
        return intersect_range(
            (Interval(a.starts_at, a.ends_at) for a in absences if a.starts_at < a.ends_at),
            range_start, range_end
        )

    # --- Lifecycle ---

    async def list_absences(self, staff_id: UUID, status: Optional[AbsenceStatus] = None) -> list[db_models.Absences]:
        stmt = select(db_models.Absences).filter(db_models.Absences.staff_id == staff_id)
        if status is not None:
            stmt = stmt.filter(db_models.Absences.status == AbsenceStatus(status).value)
        result = await self.db.execute(stmt.order_by(db_models.Absences.starts_at))
        return list(result.scalars().all())

    async def create_absence(self, data: absence_models.AbsenceCreate, actor_id: Optional[UUID]) -> db_models.Absences:
        """
        Records a new pending absence.
        Rejects empty ranges and overlaps with the staff member's other pending/approved absences.
        """
        if data.ends_at <= data.starts_at:
            raise InvalidRange("Absence end must be after its start.")
        await self.directory.get_staff(data.staff_id)

        overlapping = await self.get_overlapping(data.staff_id, data.starts_at, data.ends_at, BLOCKING_ABSENCE_STATUSES)
        if overlapping:
            log.warning(f"Absence for staff {data.staff_id} overlaps {len(overlapping)} existing absence(s).")
            raise Conflict(
                "The absence overlaps an existing pending or approved absence.",
                [{"source": "absence", "absence_id": str(a.id), "status": a.status} for a in overlapping]
            )

        absence = db_models.Absences(
            staff_id=data.staff_id,
            starts_at=data.starts_at,
            ends_at=data.ends_at,
            reason=data.reason.value,
            status=AbsenceStatus.PENDING.value,
            description=data.description,
            created_by=actor_id,
        )
        self.db.add(absence)
        await self.db.flush()
        await self.db.refresh(absence, ['created_at'])

        log.info(f"Created absence {absence.id} for staff {data.staff_id}.")
        self.audit.record(actor_id, "ABSENCE_CREATED", "Absence requested", {
            "absence_id": absence.id, "staff_id": data.staff_id,
            "starts_at": data.starts_at, "ends_at": data.ends_at,
        })
        return absence

    async def decide_absence(self, absence_id: UUID, decision: absence_models.AbsenceDecision, actor_id: Optional[UUID]) -> db_models.Absences:
        """Approves or rejects a pending absence."""
        absence = await self._get_absence(absence_id)
        if absence.status != AbsenceStatus.PENDING.value:
            raise InvalidStateTransition(
                f"Only pending absences can be approved or rejected (current status: {absence.status}).",
                {"absence_id": str(absence_id), "status": absence.status}
            )

        if decision.approve:
            approved = await self.get_overlapping(
                absence.staff_id, absence.starts_at, absence.ends_at, (AbsenceStatus.APPROVED.value,)
            )
            approved = [a for a in approved if a.id != absence.id]
            if approved:
                raise Conflict(
                    "The absence overlaps an already approved absence.",
                    [{"source": "absence", "absence_id": str(a.id), "status": a.status} for a in approved]
                )
            absence.status = AbsenceStatus.APPROVED.value
        else:
            absence.status = AbsenceStatus.REJECTED.value

        absence.approved_by = actor_id
        absence.approved_at = self.clock.now()
        absence.approval_comment = decision.comment
        await self.db.flush()

        log.info(f"Absence {absence_id} {absence.status} by {actor_id}.")
        self.audit.record(actor_id, f"ABSENCE_{absence.status.upper()}", "Absence decision", {
            "absence_id": absence_id, "staff_id": absence.staff_id,
        })
        return absence

    async def cancel_absence(self, absence_id: UUID, actor_id: Optional[UUID]) -> db_models.Absences:
        """Cancels a pending or approved absence that has not started yet."""
        absence = await self._get_absence(absence_id)
        if absence.status not in BLOCKING_ABSENCE_STATUSES:
            raise InvalidStateTransition(
                f"Absence in status '{absence.status}' cannot be cancelled.",
                {"absence_id": str(absence_id), "status": absence.status}
            )
        if self.clock.now() >= absence.starts_at:
            raise InvalidStateTransition(
                "Absences that have already started cannot be cancelled.",
                {"absence_id": str(absence_id), "starts_at": absence.starts_at.isoformat()}
            )

        absence.status = AbsenceStatus.CANCELLED.value
        await self.db.flush()

        log.info(f"Absence {absence_id} cancelled by {actor_id}.")
        self.audit.record(actor_id, "ABSENCE_CANCELLED", "Absence cancelled", {
            "absence_id": absence_id, "staff_id": absence.staff_id,
        })
        return absence
