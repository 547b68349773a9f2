'''
Slot generation and the derived availability queries (read path).

For one staff member and one service:
    open = working time minus the time the location is closed
    busy = approved absences + active staff bookings
    free = open - busy
Candidate slots are cut out of each free interval and kept only when the
service's rooms/devices can be covered.
'''
import math
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends

from ..common.clock import Clock, get_clock
from ..common.config import settings
from ..common.exceptions import InvalidRange, NotFound
from ..common.logger import log
from ..core.intervals import Interval, overlaps, subtract, total_duration
from ..database import models as db_models
from ..database.db_enums import ResourceType
from ..models import availability as availability_models
from .absence_service import AbsenceService
from .directory_service import DirectoryService
from .location_service import LocationService
from .reservation_service import ReservationService, ceil_to_bucket
from .schedule_service import ScheduleService


def validate_range(range_start: datetime, range_end: datetime) -> None:
    if range_start.tzinfo is None or range_end.tzinfo is None:
        raise InvalidRange("Range boundaries must be timezone-aware.")
    if range_end <= range_start:
        raise InvalidRange("Range end must be after its start.", {
            "start": range_start.isoformat(), "end": range_end.isoformat()
        })
    if range_end - range_start > timedelta(days=settings.MAX_QUERY_SPAN_DAYS):
        raise InvalidRange(f"Range may span at most {settings.MAX_QUERY_SPAN_DAYS} days.", {
            "start": range_start.isoformat(), "end": range_end.isoformat()
        })


class AvailabilityService:
    """
    Service computing bookable slots from schedules, opening hours, absences
    and existing bookings.
    """
    def __init__(
        self,
        directory: Annotated[DirectoryService, Depends(DirectoryService)],
        schedules: Annotated[ScheduleService, Depends(ScheduleService)],
        locations: Annotated[LocationService, Depends(LocationService)],
        absences: Annotated[AbsenceService, Depends(AbsenceService)],
        reservations: Annotated[ReservationService, Depends(ReservationService)],
        clock: Annotated[Clock, Depends(get_clock)]
    ):
        self.directory = directory
        self.schedules = schedules
        self.locations = locations
        self.absences = absences
        self.reservations = reservations
        self.clock = clock

    # --- Building Blocks ---

    async def open_intervals(self, staff: db_models.Staff, range_start: datetime, range_end: datetime) -> list[Interval]:
        """Working time of the staff member while their location is open."""
        working = await self.schedules.resolve_open_intervals(staff.id, range_start, range_end, staff=staff)
        if not working:
            return []
        closed = await self.locations.resolve_closed_intervals(staff.location_id, range_start, range_end)
        return subtract(working, closed)

    async def busy_intervals(self, staff: db_models.Staff, range_start: datetime, range_end: datetime) -> list[Interval]:
        absent = await self.absences.busy_intervals(staff.id, range_start, range_end)
        booked = await self.reservations.busy_intervals(ResourceType.STAFF, staff.id, range_start, range_end)
        return absent + booked

    async def free_intervals(self, staff: db_models.Staff, range_start: datetime, range_end: datetime) -> list[Interval]:
        opened = await self.open_intervals(staff, range_start, range_end)
        if not opened:
            return []
        busy = await self.busy_intervals(staff, range_start, range_end)
        return subtract(opened, busy)

    @staticmethod
    def _pool(members: list, quantity: int) -> tuple[list[UUID], int]:
        return [m.id for m in members if m.is_active], quantity or 0

    async def _slots_for(
        self,
        staff: db_models.Staff,
        service: db_models.ServiceDefinitions,
        range_start: datetime,
        range_end: datetime,
        limit: Optional[int] = None
    ) -> list[availability_models.Slot]:
        limit = min(limit or settings.MAX_SLOTS_PER_REQUEST, settings.MAX_SLOTS_PER_REQUEST)
        duration = timedelta(minutes=service.base_duration_min)
        step = timedelta(minutes=settings.SLOT_GRANULARITY_MINUTES)

        room_pool, room_quantity = self._pool(service.assigned_rooms, service.room_quantity_required)
        device_pool, device_quantity = self._pool(service.assigned_devices, service.device_quantity_required)
        if room_quantity > len(room_pool) or device_quantity > len(device_pool):
            log.info(f"Service {service.id} requires more rooms/devices than are assigned; no slots possible.")
            return []

        # The step grid is anchored on the unclipped free interval start.
        lookup_start = range_start - timedelta(days=1)
        free = [
            f for f in await self.free_intervals(staff, lookup_start, range_end)
            if f.end - max(f.start, range_start) >= duration
        ]
        if not free:
            return []

        room_busy = await self.reservations.busy_by_resource(ResourceType.ROOM, room_pool, range_start, range_end) if room_quantity else {}
        device_busy = await self.reservations.busy_by_resource(ResourceType.DEVICE, device_pool, range_start, range_end) if device_quantity else {}

        def enough_free(timelines: dict[UUID, list[Interval]], quantity: int, candidate: Interval) -> bool:
            if quantity <= 0:
                return True
            available = sum(
                1 for busy in timelines.values()
                if not any(overlaps(candidate, b) for b in busy)
            )
            return available >= quantity

        slots = []
        for window in free:
            start = ceil_to_bucket(window.start.astimezone(timezone.utc))
            if start < range_start:
                start += step * math.ceil((range_start - start) / step)
            while start + duration <= window.end:
                candidate = Interval(start, start + duration)
                if enough_free(room_busy, room_quantity, candidate) and enough_free(device_busy, device_quantity, candidate):
                    slots.append(availability_models.Slot(
                        staff_id=staff.id,
                        service_id=service.id,
                        start_time=candidate.start,
                        end_time=candidate.end,
                        duration_minutes=service.base_duration_min,
                    ))
                    if len(slots) >= limit:
                        log.info(f"Slot limit of {limit} reached for staff {staff.id}.")
                        return slots
                start += step
        return slots

    # --- Public Read Methods (API-Facing) ---

    async def get_available_slots(
        self,
        staff_id: UUID,
        service_id: UUID,
        range_start: datetime,
        range_end: datetime
    ) -> list[availability_models.Slot]:
        """
        Bookable slots for the service with the staff member, ordered by start.
        """
        validate_range(range_start, range_end)
        staff = await self.directory.get_staff(staff_id)
        service = await self.directory.get_service(service_id)
        log.info(f"Computing slots for staff {staff_id}, service {service_id}, {range_start} - {range_end}.")
        return await self._slots_for(staff, service, range_start, range_end)

    async def find_next_available_slot(
        self,
        staff_id: UUID,
        service_id: UUID,
        from_time: Optional[datetime] = None
    ) -> availability_models.Slot:
        """
        The earliest slot at or after max(now, from_time), searching day by day
        up to the configured horizon. Raises NotFound past the horizon.

        Each day window also covers candidates starting up to one service
        duration before it, which the previous window could not fit.
        """
        if from_time is not None and from_time.tzinfo is None:
            raise InvalidRange("Search start must be timezone-aware.", {"from_time": from_time.isoformat()})
        now = self.clock.now()
        search_start = max(now, from_time) if from_time else now
        horizon = search_start + timedelta(days=settings.NEXT_SLOT_HORIZON_DAYS)

        staff = await self.directory.get_staff(staff_id)
        service = await self.directory.get_service(service_id)
        duration = timedelta(minutes=service.base_duration_min)

        window_start = search_start
        while window_start < horizon:
            window_end = min(window_start + timedelta(days=1), horizon)
            lower = max(search_start, window_start - duration)
            slots = await self._slots_for(staff, service, lower, window_end, limit=1)
            if slots:
                return slots[0]
            window_start = window_end

        raise NotFound(
            f"No available slot within {settings.NEXT_SLOT_HORIZON_DAYS} days.",
            {"staff_id": str(staff_id), "service_id": str(service_id)}
        )

    async def get_multi_staff_availability(
        self,
        staff_ids: list[UUID],
        service_id: UUID,
        range_start: datetime,
        range_end: datetime
    ) -> list[availability_models.StaffAvailability]:
        """Slots for several staff members. An unknown staff member yields an error entry."""
        validate_range(range_start, range_end)
        service = await self.directory.get_service(service_id)

        results = []
        for staff_id in staff_ids:
            try:
                staff = await self.directory.get_staff(staff_id)
            except NotFound as e:
                results.append(availability_models.StaffAvailability(staff_id=staff_id, error=e.message))
                continue
            slots = await self._slots_for(staff, service, range_start, range_end)
            results.append(availability_models.StaffAvailability(
                staff_id=staff.id,
                display_name=staff.display_name,
                role=staff.role,
                slots=slots,
                total_slots=len(slots),
            ))
        return results

    async def get_staff_utilization(
        self,
        staff_id: UUID,
        range_start: datetime,
        range_end: datetime
    ) -> availability_models.StaffUtilization:
        """Share of the staff member's open time covered by active bookings."""
        validate_range(range_start, range_end)
        staff = await self.directory.get_staff(staff_id)

        opened = await self.open_intervals(staff, range_start, range_end)
        booked = await self.reservations.busy_intervals(ResourceType.STAFF, staff.id, range_start, range_end)

        open_time = total_duration(opened)
        unbooked_time = total_duration(subtract(opened, booked))
        booked_time = open_time - unbooked_time

        utilization = 0.0
        if open_time > timedelta(0):
            utilization = booked_time / open_time * 100

        return availability_models.StaffUtilization(
            staff_id=staff.id,
            range_start=range_start,
            range_end=range_end,
            open_hours=round(open_time.total_seconds() / 3600, 2),
            booked_hours=round(booked_time.total_seconds() / 3600, 2),
            utilization_percent=round(utilization, 2),
        )

    async def find_available_staff(
        self,
        service_id: UUID,
        range_start: datetime,
        range_end: datetime
    ) -> list[availability_models.AvailableStaff]:
        """Active staff able to perform the service with at least one slot in the range."""
        validate_range(range_start, range_end)
        service = await self.directory.get_service(service_id)

        available = []
        for staff in await self.directory.list_active_staff(service.required_role):
            slots = await self._slots_for(staff, service, range_start, range_end)
            if not slots:
                continue
            available.append(availability_models.AvailableStaff(
                staff_id=staff.id,
                display_name=staff.display_name,
                role=staff.role,
                slot_count=len(slots),
                earliest_slot=slots[0],
            ))
        return available

