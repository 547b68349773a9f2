'''
Booking validator and committer (write path).

A request is validated in a fixed order, first failure wins:
    1. the window itself                -> InvalidRange
    2. the staff member is free         -> Conflict
    3. role eligibility                 -> RoleMismatch
    4. consent                          -> ConsentRequired
    5. room/device quantities           -> ResourceExhausted
and is then handed to the reservation store, which re-checks under the
claim constraint and commits.
'''
import asyncio
from datetime import timedelta
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..common.clock import Clock, get_clock
from ..common.config import settings
from ..common.exceptions import (
    BookingEngineError,
    CancellationWindowExpired,
    ConsentRequired,
    Conflict,
    DeadlineExceeded,
    InvalidRange,
    InvalidStateTransition,
    NotFound,
    ResourceExhausted,
    RoleMismatch,
)
from ..common.logger import log
from ..core.intervals import Interval, overlaps
from ..database import models as db_models
from ..database.db_enums import (
    ACTIVE_BOOKING_STATUSES,
    BOOKING_STATUS_TRANSITIONS,
    CANCELLABLE_BOOKING_STATUSES,
    BookingStatus,
    ResourceType,
    role_satisfies,
)
from ..database.engine import get_db_session
from ..models import booking as booking_models
from .absence_service import AbsenceService
from .audit_service import AuditSink, get_audit_sink
from .availability_service import AvailabilityService
from .directory_service import DirectoryService
from .location_service import LocationService
from .notification_service import BookingOutcome, NotificationDispatcher, get_notification_dispatcher
from .reservation_service import BookingCandidate, ReservationService, is_bucket_aligned
from .schedule_service import ScheduleService


class BookingService:
    """
    Service for creating, checking, cancelling and progressing bookings.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        directory: Annotated[DirectoryService, Depends(DirectoryService)],
        availability: Annotated[AvailabilityService, Depends(AvailabilityService)],
        schedules: Annotated[ScheduleService, Depends(ScheduleService)],
        locations: Annotated[LocationService, Depends(LocationService)],
        absences: Annotated[AbsenceService, Depends(AbsenceService)],
        reservations: Annotated[ReservationService, Depends(ReservationService)],
        clock: Annotated[Clock, Depends(get_clock)],
        audit: Annotated[AuditSink, Depends(get_audit_sink)],
        notifier: Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)]
    ):
        self.db = db
        self.directory = directory
        self.availability = availability
        self.schedules = schedules
        self.locations = locations
        self.absences = absences
        self.reservations = reservations
        self.clock = clock
        self.audit = audit
        self.notifier = notifier

    # --- Collaborator Helpers ---

    async def _notify(self, outcome: BookingOutcome) -> None:
        """
        Delivery failures and slow dispatchers are logged and never affect the
        booking outcome. The wait is bounded by NOTIFICATION_TIMEOUT_SECONDS.
        """
        try:
            await asyncio.wait_for(self.notifier.dispatch(outcome), timeout=settings.NOTIFICATION_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            log.error(f"Notification dispatch for {outcome.event} (booking {outcome.booking_id}) timed out "
                      f"after {settings.NOTIFICATION_TIMEOUT_SECONDS} seconds.")
        except Exception as e:
            log.error(f"Notification dispatch failed for {outcome.event} (booking {outcome.booking_id}): {e}", exc_info=True)

    async def _reject(self, request: booking_models.BookingRequest, actor_id: Optional[UUID], error: BookingEngineError) -> None:
        """Rolls back, audits and notifies a rejected booking request."""
        await self.db.rollback()
        log.warning(f"Booking rejected for staff {request.staff_id} at {request.start_time}: {error.kind}: {error.message}")
        self.audit.record(actor_id, "BOOKING_REJECTED", error.message, {
            "staff_id": request.staff_id,
            "service_id": request.service_id,
            "patient_id": request.patient_id,
            "start_time": request.start_time,
            "end_time": request.end_time,
            "error": error.kind,
        })
        await self._notify(BookingOutcome(
            event="booking_rejected",
            staff_id=request.staff_id,
            patient_id=request.patient_id,
            details={"error": error.kind, "message": error.message},
        ))

    # --- Validation ---

    async def _explain_unavailability(self, staff: db_models.Staff, window: Interval) -> list[dict]:
        """Names everything that keeps the staff member from being free during `window`."""
        collisions = []

        working = await self.schedules.resolve_open_intervals(staff.id, window.start, window.end, staff=staff)
        if not any(w.contains(window) for w in working):
            collisions.append({"source": "off_hours", "staff_id": str(staff.id)})

        closures = await self.locations.get_closures(staff.location_id, window.start, window.end)
        if closures:
            collisions.append({"source": "closure", "location_id": str(staff.location_id)})
        else:
            closed = await self.locations.resolve_closed_intervals(staff.location_id, window.start, window.end)
            if any(overlaps(c, window) for c in closed):
                collisions.append({"source": "location_hours", "location_id": str(staff.location_id)})

        absences = await self.absences.get_overlapping(staff.id, window.start, window.end, self.absences.busy_statuses())
        collisions += [{"source": "absence", "absence_id": str(a.id)} for a in absences]

        collisions += await self.reservations.find_collisions(ResourceType.STAFF, [staff.id], window.start, window.end)
        return collisions

    async def _validate(self, request: booking_models.BookingRequest, actor_id: Optional[UUID]) -> BookingCandidate:
        """Runs every validation step in order and returns the candidate to reserve."""
        # 1. The window
        if request.end_time <= request.start_time:
            raise InvalidRange("Booking end must be after its start.", {
                "start_time": request.start_time.isoformat(), "end_time": request.end_time.isoformat()
            })
        if not (is_bucket_aligned(request.start_time) and is_bucket_aligned(request.end_time)):
            raise InvalidRange(
                f"Booking times must be aligned to {settings.RESERVATION_BUCKET_MINUTES}-minute boundaries."
            )

        staff = await self.directory.get_staff(request.staff_id)
        service = await self.directory.get_service(request.service_id)
        window = Interval(request.start_time, request.end_time)

        # 2. The staff member must be free for the whole window, recomputed now
        free = await self.availability.free_intervals(staff, window.start, window.end)
        if not any(f.contains(window) for f in free):
            collisions = await self._explain_unavailability(staff, window)
            raise Conflict("The staff member is not available in the requested window.", collisions)

        # 3. Role
        if not role_satisfies(staff.role, service.required_role):
            raise RoleMismatch(
                f"Service '{service.name}' requires role '{service.required_role}', staff member has '{staff.role}'.",
                {"required_role": service.required_role, "staff_role": staff.role}
            )

        # 4. Consent
        if service.requires_consent and not request.consent_given:
            raise ConsentRequired(f"Service '{service.name}' requires patient consent.")

        # 5. Rooms and devices
        candidate = BookingCandidate(
            service_id=service.id,
            patient_id=request.patient_id,
            location_id=staff.location_id,
            staff_id=staff.id,
            start_time=window.start,
            end_time=window.end,
            booking_type=request.booking_type,
            consent_given=request.consent_given,
            created_by=actor_id,
            room_pool=[r.id for r in service.assigned_rooms if r.is_active],
            room_quantity=service.room_quantity_required or 0,
            device_pool=[d.id for d in service.assigned_devices if d.is_active],
            device_quantity=service.device_quantity_required or 0,
        )
        for resource_type, pool, quantity in (
            (ResourceType.ROOM, candidate.room_pool, candidate.room_quantity),
            (ResourceType.DEVICE, candidate.device_pool, candidate.device_quantity),
        ):
            if quantity <= 0:
                continue
            free_members = await self.reservations.free_members(resource_type, pool, window.start, window.end)
            if len(free_members) < quantity:
                raise ResourceExhausted(resource_type.value, quantity, len(free_members))

        return candidate

    async def _validate_and_reserve(self, request: booking_models.BookingRequest, actor_id: Optional[UUID]) -> db_models.Bookings:
        candidate = await self._validate(request, actor_id)
        return await self.reservations.reserve(candidate)

    # --- Public Methods (API-Facing) ---

    async def check_booking(self, request: booking_models.BookingRequest) -> booking_models.BookingCheckResult:
        """Dry run of the validation steps. Nothing is reserved."""
        try:
            await self._validate(request, None)
        except BookingEngineError as e:
            log.info(f"Booking check negative for staff {request.staff_id}: {e.kind}")
            return booking_models.BookingCheckResult(available=False, reason=e.message, error_kind=e.kind)
        return booking_models.BookingCheckResult(available=True)

    async def create_booking(
        self,
        request: booking_models.BookingRequest,
        actor_id: Optional[UUID],
        deadline_seconds: Optional[float] = None
    ) -> db_models.Bookings:
        """
        Validates and commits a booking.

        The whole read-validate-commit chain runs under a deadline; when it
        expires the transaction is rolled back and DeadlineExceeded is raised.
        """
        timeout = deadline_seconds if deadline_seconds is not None else settings.BOOKING_DEADLINE_SECONDS
        log.info(f"Booking request by {actor_id} for staff {request.staff_id}, {request.start_time} - {request.end_time}.")
        try:
            booking = await asyncio.wait_for(self._validate_and_reserve(request, actor_id), timeout=timeout)
        except asyncio.TimeoutError:
            error = DeadlineExceeded(f"Booking request did not complete within {timeout} seconds.", {"deadline_seconds": timeout})
            await self._reject(request, actor_id, error)
            raise error
        except BookingEngineError as e:
            await self._reject(request, actor_id, e)
            raise

        self.audit.record(actor_id, "BOOKING_CREATED", "Booking created", {
            "booking_id": booking.id,
            "staff_id": booking.staff_id,
            "service_id": booking.service_id,
            "start_time": booking.start_time,
            "end_time": booking.end_time,
        })
        await self._notify(BookingOutcome(
            event="booking_created",
            booking_id=booking.id,
            staff_id=booking.staff_id,
            patient_id=booking.patient_id,
        ))
        return booking

    async def get_booking(self, booking_id: UUID) -> db_models.Bookings:
        stmt = select(db_models.Bookings).options(
            selectinload(db_models.Bookings.resources)
        ).filter(db_models.Bookings.id == booking_id)
        result = await self.db.execute(stmt)
        booking = result.scalars().first()
        if not booking:
            log.warning(f"Tried to fetch non-existing booking: {booking_id}")
            raise NotFound(f"Booking {booking_id} not found.", {"booking_id": str(booking_id)})
        return booking

    async def cancel_booking(self, booking_id: UUID, actor_id: Optional[UUID], reason: Optional[str] = None) -> db_models.Bookings:
        """
        Cancels a scheduled or confirmed booking outside the cancellation
        window and frees everything it held.
        """
        booking = await self.get_booking(booking_id)
        if booking.status not in CANCELLABLE_BOOKING_STATUSES:
            raise InvalidStateTransition(
                f"Booking in status '{booking.status}' cannot be cancelled.",
                {"booking_id": str(booking_id), "status": booking.status}
            )

        now = self.clock.now()
        cutoff = booking.start_time - timedelta(hours=settings.CANCELLATION_WINDOW_HOURS)
        if now >= cutoff:
            log.warning(f"Cancellation of booking {booking_id} refused: window closed at {cutoff}.")
            raise CancellationWindowExpired(
                f"Bookings can only be cancelled up to {settings.CANCELLATION_WINDOW_HOURS} hours before they start.",
                {"booking_id": str(booking_id), "cutoff": cutoff.isoformat()}
            )

        booking.status = BookingStatus.CANCELLED.value
        booking.cancelled_at = now
        booking.cancellation_reason = reason
        await self.reservations.release(booking)
        await self.db.flush()

        log.info(f"Booking {booking_id} cancelled by {actor_id}.")
        self.audit.record(actor_id, "BOOKING_CANCELLED", reason or "Booking cancelled", {"booking_id": booking.id})
        await self._notify(BookingOutcome(
            event="booking_cancelled",
            booking_id=booking.id,
            staff_id=booking.staff_id,
            patient_id=booking.patient_id,
        ))
        return booking

    async def update_status(self, booking_id: UUID, new_status: BookingStatus, actor_id: Optional[UUID]) -> db_models.Bookings:
        """Moves a booking along its lifecycle. Cancellation goes through cancel_booking."""
        new_status = BookingStatus(new_status)
        if new_status is BookingStatus.CANCELLED:
            raise InvalidStateTransition("Use the cancellation endpoint to cancel a booking.")

        booking = await self.get_booking(booking_id)
        current = BookingStatus(booking.status)
        if new_status not in BOOKING_STATUS_TRANSITIONS[current]:
            raise InvalidStateTransition(
                f"Cannot move booking from '{current.value}' to '{new_status.value}'.",
                {"booking_id": str(booking_id), "status": current.value, "requested": new_status.value}
            )

        booking.status = new_status.value
        if new_status.value not in ACTIVE_BOOKING_STATUSES:
            await self.reservations.release(booking)
        await self.db.flush()

        log.info(f"Booking {booking_id} moved from {current.value} to {new_status.value} by {actor_id}.")
        self.audit.record(actor_id, "BOOKING_STATUS_CHANGED", f"{current.value} -> {new_status.value}", {"booking_id": booking.id})
        await self._notify(BookingOutcome(
            event="booking_status_changed",
            booking_id=booking.id,
            staff_id=booking.staff_id,
            patient_id=booking.patient_id,
            details={"from": current.value, "to": new_status.value},
        ))
        return booking
