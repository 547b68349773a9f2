'''
Resource reservation store.

Every staff member, room and device has its own timeline (booking_resources).
A booking is written together with one resource_claims row per reservation
bucket it covers; the primary key on resource_claims makes it impossible for
two active bookings to hold the same resource at the same time, no matter how
many writers race.
'''
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional
from uuid import UUID, uuid4

from fastapi import Depends
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.config import settings
from ..common.exceptions import Conflict, InvalidRange, ResourceExhausted
from ..common.logger import log
from ..core.intervals import Interval, intersect_range
from ..database import models as db_models
from ..database.db_enums import ACTIVE_BOOKING_STATUSES, BookingStatus, BookingType, ResourceType
from ..database.engine import get_db_session

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class BookingCandidate:
    """A fully validated booking request, ready to be reserved."""
    service_id: UUID
    patient_id: UUID
    location_id: UUID
    staff_id: UUID
    start_time: datetime
    end_time: datetime
    booking_type: BookingType = BookingType.INTERNAL
    consent_given: bool = False
    created_by: Optional[UUID] = None
    room_pool: list[UUID] = field(default_factory=list)
    room_quantity: int = 0
    device_pool: list[UUID] = field(default_factory=list)
    device_quantity: int = 0


def bucket_size() -> timedelta:
    return timedelta(minutes=settings.RESERVATION_BUCKET_MINUTES)


def is_bucket_aligned(instant: datetime) -> bool:
    """True when `instant` sits exactly on the reservation bucket grid (UTC epoch based)."""
    return (instant - EPOCH) % bucket_size() == timedelta(0)


def ceil_to_bucket(instant: datetime) -> datetime:
    """The first bucket boundary at or after `instant`."""
    offset = (instant - EPOCH) % bucket_size()
    if not offset:
        return instant
    return instant + (bucket_size() - offset)


def bucket_starts(start: datetime, end: datetime) -> list[datetime]:
    step = bucket_size()
    buckets = []
    current = start
    while current < end:
        buckets.append(current)
        current += step
    return buckets


class ReservationService:
    """
    Service owning the per-resource booking timelines.
    This is the only place that writes new bookings.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    # --- Read Methods ---

    async def _active_entries(
        self,
        resource_type: ResourceType,
        resource_ids: list[UUID],
        range_start: datetime,
        range_end: datetime
    ) -> list[db_models.BookingResources]:
        if not resource_ids:
            return []
        stmt = select(db_models.BookingResources).join(
            db_models.Bookings, db_models.Bookings.id == db_models.BookingResources.booking_id
        ).filter(
            db_models.BookingResources.resource_type == resource_type.value,
            db_models.BookingResources.resource_id.in_(resource_ids),
            db_models.BookingResources.start_time < range_end,
            db_models.BookingResources.end_time > range_start,
            db_models.Bookings.status.in_(ACTIVE_BOOKING_STATUSES)
        ).order_by(db_models.BookingResources.start_time)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def busy_intervals(
        self,
        resource_type: ResourceType,
        resource_id: UUID,
        range_start: datetime,
        range_end: datetime
    ) -> list[Interval]:
        """Active bookings on one resource's timeline, clipped to the range."""
        entries = await self._active_entries(resource_type, [resource_id], range_start, range_end)
        return intersect_range(
            (Interval(e.start_time, e.end_time) for e in entries), range_start, range_end
        )

    async def busy_by_resource(
        self,
        resource_type: ResourceType,
        resource_ids: list[UUID],
        range_start: datetime,
        range_end: datetime
    ) -> dict[UUID, list[Interval]]:
        """Busy intervals for a whole pool in a single query, keyed by resource id."""
        timelines: dict[UUID, list[Interval]] = {rid: [] for rid in resource_ids}
        for e in await self._active_entries(resource_type, resource_ids, range_start, range_end):
            timelines[e.resource_id].extend(intersect_range([Interval(e.start_time, e.end_time)], range_start, range_end))
        return timelines

    async def find_collisions(
        self,
        resource_type: ResourceType,
        resource_ids: list[UUID],
        start: datetime,
        end: datetime
    ) -> list[dict]:
        """Describes every active booking overlapping [start, end) on the given resources."""
        collisions: dict[UUID, list[str]] = {}
        for e in await self._active_entries(resource_type, resource_ids, start, end):
            collisions.setdefault(e.resource_id, []).append(str(e.booking_id))
        return [
            {
                "source": "booking",
                "resource_type": resource_type.value,
                "resource_id": str(rid),
                "booking_ids": booking_ids,
            }
            for rid, booking_ids in collisions.items()
        ]

    async def free_members(
        self,
        resource_type: ResourceType,
        pool: list[UUID],
        start: datetime,
        end: datetime
    ) -> list[UUID]:
        """Members of `pool`, in pool order, with no active booking overlapping [start, end)."""
        taken = {e.resource_id for e in await self._active_entries(resource_type, pool, start, end)}
        return [member for member in pool if member not in taken]

    # --- Write Methods ---

    async def _allocate(self, resource_type: ResourceType, pool: list[UUID], quantity: int, start: datetime, end: datetime) -> list[UUID]:
        if quantity <= 0:
            return []
        free = await self.free_members(resource_type, pool, start, end)
        if len(free) < quantity:
            log.warning(f"Cannot allocate {quantity} {resource_type.value}(s) for {start} - {end}: only {len(free)} free.")
            raise ResourceExhausted(resource_type.value, quantity, len(free))
        return free[:quantity]

    async def reserve(self, candidate: BookingCandidate) -> db_models.Bookings:
        """
        Atomically writes the booking, its timeline entries and its claims,
        then commits.

        Raises Conflict when the staff member is already booked (or a
        concurrent writer claims the same time first) and ResourceExhausted
        when a room/device pool cannot cover the required quantity. Nothing
        is left behind on failure.
        """
        start, end = candidate.start_time, candidate.end_time
        if end <= start:
            raise InvalidRange("Booking end must be after its start.")
        if not (is_bucket_aligned(start) and is_bucket_aligned(end)):
            raise InvalidRange(
                f"Booking times must be aligned to {settings.RESERVATION_BUCKET_MINUTES}-minute boundaries."
            )

        # 1. Exact overlap check on the staff timeline
        staff_collisions = await self.find_collisions(ResourceType.STAFF, [candidate.staff_id], start, end)
        if staff_collisions:
            log.warning(f"Staff {candidate.staff_id} already booked between {start} and {end}.")
            raise Conflict("The staff member already has a booking in the requested window.", staff_collisions)

        # 2. Choose pool members
        rooms = await self._allocate(ResourceType.ROOM, candidate.room_pool, candidate.room_quantity, start, end)
        devices = await self._allocate(ResourceType.DEVICE, candidate.device_pool, candidate.device_quantity, start, end)

        held = [(ResourceType.STAFF, candidate.staff_id)]
        held += [(ResourceType.ROOM, room_id) for room_id in rooms]
        held += [(ResourceType.DEVICE, device_id) for device_id in devices]

        # 3. Build the booking with everything it holds
        booking_id = uuid4()
        booking = db_models.Bookings(
            id=booking_id,
            service_id=candidate.service_id,
            patient_id=candidate.patient_id,
            location_id=candidate.location_id,
            staff_id=candidate.staff_id,
            room_id=rooms[0] if rooms else None,
            device_id=devices[0] if devices else None,
            start_time=start,
            end_time=end,
            status=BookingStatus.SCHEDULED.value,
            booking_type=BookingType(candidate.booking_type).value,
            consent_given=candidate.consent_given,
            created_by=candidate.created_by,
        )
        booking.resources = [
            db_models.BookingResources(
                booking_id=booking_id,
                resource_type=resource_type.value,
                resource_id=resource_id,
                start_time=start,
                end_time=end,
            )
            for resource_type, resource_id in held
        ]
        booking.claims = [
            db_models.ResourceClaims(
                resource_type=resource_type.value,
                resource_id=resource_id,
                bucket_start=bucket,
                booking_id=booking_id,
            )
            for resource_type, resource_id in held
            for bucket in bucket_starts(start, end)
        ]

        # 4. Insert and commit as one unit
        self.db.add(booking)
        try:
            await self.db.flush()
            await self.db.refresh(booking, ['created_at'])
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            log.warning(f"Concurrent reservation won the race for booking window {start} - {end}: {e.orig}")
            collisions = []
            for resource_type in (ResourceType.STAFF, ResourceType.ROOM, ResourceType.DEVICE):
                ids = [rid for rtype, rid in held if rtype is resource_type]
                collisions += await self.find_collisions(resource_type, ids, start, end)
            raise Conflict("Another booking claimed the requested resources first.", collisions) from e

        log.info(f"Reserved booking {booking_id} for staff {candidate.staff_id} ({start} - {end}), rooms={rooms}, devices={devices}.")
        return booking

    async def release(self, booking: db_models.Bookings) -> None:
        """Drops every claim the booking holds so its time can be booked again."""
        await self.db.execute(
            delete(db_models.ResourceClaims).where(db_models.ResourceClaims.booking_id == booking.id)
        )
        log.info(f"Released reservation claims of booking {booking.id}.")
