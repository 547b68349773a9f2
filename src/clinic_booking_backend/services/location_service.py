'''
Location calendar: recurring opening hours minus closures.
'''
from datetime import datetime, time, timedelta
from typing import Annotated
from uuid import UUID

from fastapi import Depends
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.config import settings
from ..common.logger import log
from ..core import recurrence
from ..core.intervals import Interval, intersect_range, merge, subtract
from ..core.local_time import combine_local, local_days, resolve_timezone
from ..database import models as db_models
from ..database.engine import get_db_session
from .directory_service import DirectoryService


class LocationService:
    """
    Service for resolving when a location is open.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        directory: Annotated[DirectoryService, Depends(DirectoryService)]
    ):
        self.db = db
        self.directory = directory

    async def _get_hours(self, location_id: UUID, first_day, last_day) -> list[db_models.LocationHours]:
        stmt = select(db_models.LocationHours).filter(
            db_models.LocationHours.location_id == location_id,
            db_models.LocationHours.is_active.is_(True),
            db_models.LocationHours.valid_from <= last_day,
            or_(
                db_models.LocationHours.valid_until.is_(None),
                db_models.LocationHours.valid_until >= first_day
            )
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_closures(self, location_id: UUID, range_start: datetime, range_end: datetime) -> list[Interval]:
        """Closures overlapping the range, clipped to it."""
        stmt = select(db_models.LocationClosures).filter(
            db_models.LocationClosures.location_id == location_id,
            db_models.LocationClosures.starts_at < range_end,
            db_models.LocationClosures.ends_at > range_start
        )
        result = await self.db.execute(stmt)
        closures = [
            Interval(c.starts_at, c.ends_at)
            for c in result.scalars().all() if c.starts_at < c.ends_at
        ]
        return intersect_range(closures, range_start, range_end)

    @staticmethod
    def _expand_hours(entry: db_models.LocationHours, default_tz: str, range_start: datetime, range_end: datetime) -> list[Interval]:
        tz_name = entry.timezone or default_tz
        window_end = range_end
        if entry.valid_until is not None:
            # valid_until is inclusive: the entry stops at the end of that local day.
            tz = resolve_timezone(tz_name)
            window_end = min(range_end, combine_local(entry.valid_until + timedelta(days=1), time.min, tz))
            if window_end <= range_start:
                return []
        try:
            return recurrence.expand(
                entry.rrule, entry.valid_from, entry.start_time, entry.end_time,
                tz_name, range_start, window_end
            )
        except ValueError as e:
            log.error(f"Skipping location hours {entry.id}: unparsable rule '{entry.rrule}': {e}")
            return []

    async def resolve_open_intervals(self, location_id: UUID, range_start: datetime, range_end: datetime) -> list[Interval]:
        """
        Intervals within [range_start, range_end) during which the location is open.
        Raises NotFound for an unknown location.
        """
        location = await self.directory.get_location(location_id)
        tz = resolve_timezone(location.timezone)
        days = list(local_days(range_start, range_end, tz))

        # One day of slack on each side for blocks that cross midnight.
        hours = await self._get_hours(location_id, days[0] - timedelta(days=1), days[-1] + timedelta(days=1))
        if hours:
            opened = merge(
                interval
                for entry in hours
                for interval in self._expand_hours(entry, location.timezone, range_start, range_end)
            )
        elif settings.LOCATION_OPEN_WITHOUT_HOURS:
            opened = [Interval(range_start, range_end)]
        else:
            log.info(f"Location {location_id} has no opening hours in range; treating it as closed.")
            return []

        closures = await self.get_closures(location_id, range_start, range_end)
        return subtract(opened, closures)

    async def resolve_closed_intervals(self, location_id: UUID, range_start: datetime, range_end: datetime) -> list[Interval]:
        """Complement of the open intervals within the range."""
        opened = await self.resolve_open_intervals(location_id, range_start, range_end)
        return subtract([Interval(range_start, range_end)], opened)
