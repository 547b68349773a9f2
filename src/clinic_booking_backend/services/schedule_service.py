'''
Resolves a staff member's weekly schedules into concrete working intervals.
'''
from datetime import date, datetime
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..common.logger import log
from ..core.intervals import Interval, intersect_range, merge, subtract
from ..core.local_time import combine_local, local_days, resolve_timezone
from ..database import models as db_models
from ..database.db_enums import Weekday
from ..database.engine import get_db_session
from .directory_service import DirectoryService


class ScheduleService:
    """
    Service for turning weekly schedule templates into working time.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        directory: Annotated[DirectoryService, Depends(DirectoryService)]
    ):
        self.db = db
        self.directory = directory

    async def _get_schedules_covering(self, staff_id: UUID, first_day: date, last_day: date) -> list[db_models.WeeklySchedules]:
        """Active schedules of the staff member whose validity window touches [first_day, last_day]."""
        stmt = select(db_models.WeeklySchedules).options(
            selectinload(db_models.WeeklySchedules.days)
        ).filter(
            db_models.WeeklySchedules.staff_id == staff_id,
            db_models.WeeklySchedules.is_active.is_(True),
            db_models.WeeklySchedules.valid_from <= last_day,
            or_(
                db_models.WeeklySchedules.valid_to.is_(None),
                db_models.WeeklySchedules.valid_to >= first_day
            )
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def _day_intervals(entry: db_models.WeeklyScheduleDays, day: date, tz) -> list[Interval]:
        if not entry.is_working or entry.start_time is None or entry.end_time is None:
            return []
        if entry.end_time <= entry.start_time:
            log.warning(f"Ignoring schedule day {entry.id}: end_time {entry.end_time} is not after start_time {entry.start_time}.")
            return []

        block = [Interval(combine_local(day, entry.start_time, tz), combine_local(day, entry.end_time, tz))]
        if entry.break_start and entry.break_end and entry.break_start < entry.break_end:
            pause = Interval(combine_local(day, entry.break_start, tz), combine_local(day, entry.break_end, tz))
            block = subtract(block, [pause])
        return block

    async def resolve_open_intervals(
        self,
        staff_id: UUID,
        range_start: datetime,
        range_end: datetime,
        staff: Optional[db_models.Staff] = None
    ) -> list[Interval]:
        """
        The staff member's working intervals within [range_start, range_end).

        Days are evaluated in the timezone of the staff member's location.
        Overlapping schedules are unioned. A day with no covering schedule, or
        marked as not working, contributes nothing.
        """
        if staff is None:
            staff = await self.directory.get_staff(staff_id)
        tz = resolve_timezone(staff.location.timezone if staff.location else None)

        days = list(local_days(range_start, range_end, tz))
        schedules = await self._get_schedules_covering(staff_id, days[0], days[-1])
        if not schedules:
            log.info(f"No active schedule for staff {staff_id} between {days[0]} and {days[-1]}.")
            return []

        intervals = []
        for day in days:
            weekday = Weekday.from_index(day.weekday()).value
            for schedule in schedules:
                if day < schedule.valid_from or (schedule.valid_to and day > schedule.valid_to):
                    continue
                for entry in schedule.days:
                    if entry.day == weekday:
                        intervals.extend(self._day_intervals(entry, day, tz))

        return intersect_range(merge(intervals), range_start, range_end)
