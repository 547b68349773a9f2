import asyncio
import pytest
from datetime import datetime, timedelta
from sqlalchemy import func, select

from clinic_booking_backend.common.exceptions import Conflict, InvalidRange, ResourceExhausted
from clinic_booking_backend.core.intervals import Interval
from clinic_booking_backend.database import models as db_models
from clinic_booking_backend.database.db_enums import BookingStatus, ResourceType
from clinic_booking_backend.services.reservation_service import (
    BookingCandidate, ReservationService, bucket_starts, ceil_to_bucket, is_bucket_aligned
)
from tests.constants import (
    TEST_DEVICE_ID,
    TEST_DOCTOR_2_ID,
    TEST_DOCTOR_ID,
    TEST_LOCATION_ID,
    TEST_MONDAY,
    TEST_PATIENT_2_ID,
    TEST_PATIENT_ID,
    TEST_ROOM_1_ID,
    TEST_ROOM_2_ID,
    TEST_SERVICE_ONE_ROOM_ID,
    TEST_SERVICE_TREATMENT_ID,
    TEST_SERVICE_TWO_ROOMS_ID,
)

DAY = timedelta(days=1)


def on(day: datetime, hour: int, minute: int = 0) -> datetime:
    return day.replace(hour=hour, minute=minute)


def candidate(start: datetime, end: datetime, staff_id=TEST_DOCTOR_ID, **kwargs) -> BookingCandidate:
    return BookingCandidate(
        service_id=kwargs.pop("service_id", TEST_SERVICE_TREATMENT_ID),
        patient_id=kwargs.pop("patient_id", TEST_PATIENT_ID),
        location_id=TEST_LOCATION_ID,
        staff_id=staff_id,
        start_time=start,
        end_time=end,
        **kwargs
    )


async def count_claims(session, booking_id=None) -> int:
    stmt = select(func.count()).select_from(db_models.ResourceClaims)
    if booking_id is not None:
        stmt = stmt.where(db_models.ResourceClaims.booking_id == booking_id)
    return (await session.execute(stmt)).scalar_one()


class TestBucketGrid:

    def test_alignment(self):
        assert is_bucket_aligned(on(TEST_MONDAY, 9, 5))
        assert not is_bucket_aligned(on(TEST_MONDAY, 9, 7))

    def test_ceil_to_bucket(self):
        assert ceil_to_bucket(on(TEST_MONDAY, 9, 1)) == on(TEST_MONDAY, 9, 5)
        assert ceil_to_bucket(on(TEST_MONDAY, 9, 5)) == on(TEST_MONDAY, 9, 5)

    def test_bucket_starts_cover_the_window(self):
        buckets = bucket_starts(on(TEST_MONDAY, 9), on(TEST_MONDAY, 9, 30))
        assert len(buckets) == 6
        assert buckets[0] == on(TEST_MONDAY, 9)
        assert buckets[-1] == on(TEST_MONDAY, 9, 25)


@pytest.mark.anyio
class TestReserve:

    async def test_reserve_writes_timeline_and_claims(self, clinic, reservation_service: ReservationService):
        booking = await reservation_service.reserve(candidate(on(TEST_MONDAY, 10), on(TEST_MONDAY, 11)))
        print(f"\nReserved booking {booking.id}")

        assert booking.status == BookingStatus.SCHEDULED.value
        assert booking.created_at is not None
        assert [r.resource_type for r in booking.resources] == [ResourceType.STAFF.value]
        # 60 minutes of 5 minute buckets on one resource
        assert await count_claims(clinic, booking.id) == 12

    async def test_reserve_with_room_claims_both_timelines(self, clinic, reservation_service: ReservationService):
        booking = await reservation_service.reserve(candidate(
            on(TEST_MONDAY, 10), on(TEST_MONDAY, 11), service_id=TEST_SERVICE_ONE_ROOM_ID,
            room_pool=[TEST_ROOM_1_ID, TEST_ROOM_2_ID], room_quantity=1
        ))
        assert booking.room_id == TEST_ROOM_1_ID
        assert await count_claims(clinic, booking.id) == 24

    async def test_staff_overlap_is_a_conflict(self, clinic, reservation_service: ReservationService):
        first = await reservation_service.reserve(candidate(on(TEST_MONDAY, 10), on(TEST_MONDAY, 11)))
        first_id = str(first.id)

        with pytest.raises(Conflict) as e:
            await reservation_service.reserve(candidate(
                on(TEST_MONDAY, 10, 30), on(TEST_MONDAY, 11, 30), patient_id=TEST_PATIENT_2_ID
            ))
        collision = e.value.collisions[0]
        print(f"\nCollision: {collision}")
        assert collision["source"] == "booking"
        assert collision["resource_type"] == ResourceType.STAFF.value
        assert collision["booking_ids"] == [first_id]

    async def test_back_to_back_bookings_are_allowed(self, clinic, reservation_service: ReservationService):
        await reservation_service.reserve(candidate(on(TEST_MONDAY, 10), on(TEST_MONDAY, 11)))
        second = await reservation_service.reserve(candidate(on(TEST_MONDAY, 11), on(TEST_MONDAY, 12)))
        assert second.start_time == on(TEST_MONDAY, 11)

    async def test_misaligned_window_is_rejected(self, clinic, reservation_service: ReservationService):
        with pytest.raises(InvalidRange):
            await reservation_service.reserve(candidate(on(TEST_MONDAY, 10, 2), on(TEST_MONDAY, 11)))

    async def test_empty_window_is_rejected(self, clinic, reservation_service: ReservationService):
        with pytest.raises(InvalidRange):
            await reservation_service.reserve(candidate(on(TEST_MONDAY, 11), on(TEST_MONDAY, 11)))

    async def test_room_pool_exhausted(self, clinic, reservation_service: ReservationService):
        await reservation_service.reserve(candidate(
            on(TEST_MONDAY, 10), on(TEST_MONDAY, 11), staff_id=TEST_DOCTOR_2_ID, service_id=TEST_SERVICE_ONE_ROOM_ID,
            room_pool=[TEST_ROOM_1_ID, TEST_ROOM_2_ID], room_quantity=1
        ))

        with pytest.raises(ResourceExhausted) as e:
            await reservation_service.reserve(candidate(
                on(TEST_MONDAY, 10), on(TEST_MONDAY, 11), service_id=TEST_SERVICE_TWO_ROOMS_ID,
                room_pool=[TEST_ROOM_1_ID, TEST_ROOM_2_ID], room_quantity=2
            ))
        assert e.value.required == 2
        assert e.value.available == 1

    async def test_second_room_is_allocated_when_first_is_taken(self, clinic, reservation_service: ReservationService):
        await reservation_service.reserve(candidate(
            on(TEST_MONDAY, 10), on(TEST_MONDAY, 11), staff_id=TEST_DOCTOR_2_ID, service_id=TEST_SERVICE_ONE_ROOM_ID,
            room_pool=[TEST_ROOM_1_ID, TEST_ROOM_2_ID], room_quantity=1
        ))
        booking = await reservation_service.reserve(candidate(
            on(TEST_MONDAY, 10), on(TEST_MONDAY, 11), service_id=TEST_SERVICE_ONE_ROOM_ID,
            room_pool=[TEST_ROOM_1_ID, TEST_ROOM_2_ID], room_quantity=1
        ))
        assert booking.room_id == TEST_ROOM_2_ID

    async def test_claim_constraint_rejects_unseen_holder(self, clinic, reservation_service: ReservationService):
        """A claim without a visible timeline entry still blocks the insert."""
        holder = db_models.Bookings(
            service_id=TEST_SERVICE_TREATMENT_ID, patient_id=TEST_PATIENT_2_ID, location_id=TEST_LOCATION_ID,
            staff_id=TEST_DOCTOR_ID, start_time=on(TEST_MONDAY, 10), end_time=on(TEST_MONDAY, 10, 5),
            status=BookingStatus.SCHEDULED.value
        )
        clinic.add(holder)
        await clinic.flush()
        clinic.add(db_models.ResourceClaims(
            resource_type=ResourceType.STAFF.value, resource_id=TEST_DOCTOR_ID,
            bucket_start=on(TEST_MONDAY, 10), booking_id=holder.id
        ))
        await clinic.commit()
        clinic.expunge_all()

        with pytest.raises(Conflict):
            await reservation_service.reserve(candidate(on(TEST_MONDAY, 10), on(TEST_MONDAY, 11)))

        # Nothing of the failed attempt was kept
        assert await count_claims(clinic) == 1

    async def test_release_frees_the_time(self, clinic, reservation_service: ReservationService):
        booking = await reservation_service.reserve(candidate(on(TEST_MONDAY, 10), on(TEST_MONDAY, 11)))
        booking.status = BookingStatus.CANCELLED.value
        await reservation_service.release(booking)
        await clinic.commit()
        assert await count_claims(clinic, booking.id) == 0

        again = await reservation_service.reserve(candidate(
            on(TEST_MONDAY, 10), on(TEST_MONDAY, 11), patient_id=TEST_PATIENT_2_ID
        ))
        assert await count_claims(clinic, again.id) == 12

    async def test_concurrent_reservations_admit_exactly_one(self, clinic, session_factory, make_services):
        async with session_factory() as session_a, session_factory() as session_b:
            results = await asyncio.gather(
                make_services(session_a).reservations.reserve(candidate(on(TEST_MONDAY, 10), on(TEST_MONDAY, 11))),
                make_services(session_b).reservations.reserve(candidate(
                    on(TEST_MONDAY, 10, 30), on(TEST_MONDAY, 11, 30), patient_id=TEST_PATIENT_2_ID
                )),
                return_exceptions=True
            )
        print(f"\nRace results: {results}")

        winners = [r for r in results if isinstance(r, db_models.Bookings)]
        losers = [r for r in results if isinstance(r, Conflict)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert await count_claims(clinic) == 12


@pytest.mark.anyio
class TestTimelines:

    async def test_busy_intervals_only_count_active_bookings(self, clinic, reservation_service: ReservationService):
        kept = await reservation_service.reserve(candidate(on(TEST_MONDAY, 10), on(TEST_MONDAY, 11)))
        dropped = await reservation_service.reserve(candidate(on(TEST_MONDAY, 14), on(TEST_MONDAY, 15)))
        dropped.status = BookingStatus.NO_SHOW.value
        await reservation_service.release(dropped)
        await clinic.commit()

        busy = await reservation_service.busy_intervals(ResourceType.STAFF, TEST_DOCTOR_ID, TEST_MONDAY, TEST_MONDAY + DAY)
        assert busy == [Interval(kept.start_time, kept.end_time)]

    async def test_busy_intervals_are_clipped(self, clinic, reservation_service: ReservationService):
        await reservation_service.reserve(candidate(on(TEST_MONDAY, 10), on(TEST_MONDAY, 11)))
        busy = await reservation_service.busy_intervals(
            ResourceType.STAFF, TEST_DOCTOR_ID, on(TEST_MONDAY, 10, 30), on(TEST_MONDAY, 12)
        )
        assert busy == [Interval(on(TEST_MONDAY, 10, 30), on(TEST_MONDAY, 11))]

    async def test_free_members_keeps_pool_order(self, clinic, reservation_service: ReservationService):
        await reservation_service.reserve(candidate(
            on(TEST_MONDAY, 10), on(TEST_MONDAY, 11), service_id=TEST_SERVICE_ONE_ROOM_ID,
            room_pool=[TEST_ROOM_1_ID, TEST_ROOM_2_ID], room_quantity=1
        ))
        pool = [TEST_ROOM_2_ID, TEST_ROOM_1_ID]
        assert await reservation_service.free_members(ResourceType.ROOM, pool, on(TEST_MONDAY, 10), on(TEST_MONDAY, 11)) == [TEST_ROOM_2_ID]
        assert await reservation_service.free_members(ResourceType.ROOM, pool, on(TEST_MONDAY, 11), on(TEST_MONDAY, 12)) == pool

    async def test_busy_by_resource_covers_whole_pool(self, clinic, reservation_service: ReservationService):
        await reservation_service.reserve(candidate(
            on(TEST_MONDAY, 10), on(TEST_MONDAY, 10, 30), service_id=TEST_SERVICE_ONE_ROOM_ID,
            room_pool=[TEST_ROOM_1_ID], room_quantity=1
        ))
        timelines = await reservation_service.busy_by_resource(
            ResourceType.ROOM, [TEST_ROOM_1_ID, TEST_ROOM_2_ID], TEST_MONDAY, TEST_MONDAY + DAY
        )
        assert timelines[TEST_ROOM_1_ID] == [Interval(on(TEST_MONDAY, 10), on(TEST_MONDAY, 10, 30))]
        assert timelines[TEST_ROOM_2_ID] == []
        assert await reservation_service.busy_intervals(ResourceType.DEVICE, TEST_DEVICE_ID, TEST_MONDAY, TEST_MONDAY + DAY) == []
