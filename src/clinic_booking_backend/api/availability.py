'''
API endpoints for availability queries (the read path).
'''
from datetime import datetime
from typing import Annotated, Any, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query

from ..models import availability as availability_models
from ..models.token import Actor
from ..services.audit_service import AuditSink, get_audit_sink
from ..services.availability_service import AvailabilityService
from ..services.security import get_current_actor


class AvailabilityAPI:
    """
    A class to encapsulate the availability endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/availability",
            tags=["Availability"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
            "/slots",
            self.get_slots,
            methods=["GET"],
            response_model=list[availability_models.Slot])

        self.router.add_api_route(
            "/multi-staff",
            self.get_multi_staff,
            methods=["GET"],
            response_model=list[availability_models.StaffAvailability])

        self.router.add_api_route(
            "/next-available",
            self.get_next_available,
            methods=["GET"],
            response_model=availability_models.Slot)

        self.router.add_api_route(
            "/utilization/{staff_id}",
            self.get_utilization,
            methods=["GET"],
            response_model=availability_models.StaffUtilization)

        self.router.add_api_route(
            "/available-staff",
            self.get_available_staff,
            methods=["GET"],
            response_model=list[availability_models.AvailableStaff])

    async def get_slots(
        self,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        audit: Annotated[AuditSink, Depends(get_audit_sink)],
        staff_id: Annotated[UUID, Query()],
        service_id: Annotated[UUID, Query()],
        start: Annotated[datetime, Query(description="Range start (timezone-aware)")],
        end: Annotated[datetime, Query(description="Range end (timezone-aware)")]
    ) -> list[Any]:
        """
        Retrieves the bookable slots of one staff member for one service.
        """
        slots = await availability_service.get_available_slots(staff_id, service_id, start, end)
        audit.record(current_actor.id, "availability.read", "Slots queried", {
            "staff_id": staff_id, "service_id": service_id, "slot_count": len(slots)
        })
        return slots

    async def get_multi_staff(
        self,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        staff_ids: Annotated[list[UUID], Query()],
        service_id: Annotated[UUID, Query()],
        start: Annotated[datetime, Query()],
        end: Annotated[datetime, Query()]
    ) -> list[Any]:
        """
        Retrieves slots for several staff members at once.
        """
        return await availability_service.get_multi_staff_availability(staff_ids, service_id, start, end)

    async def get_next_available(
        self,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        staff_id: Annotated[UUID, Query()],
        service_id: Annotated[UUID, Query()],
        from_time: Annotated[Optional[datetime], Query(description="Search from this instant (defaults to now)")] = None
    ) -> Any:
        return await availability_service.find_next_available_slot(staff_id, service_id, from_time)

    async def get_utilization(
        self,
        staff_id: UUID,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        audit: Annotated[AuditSink, Depends(get_audit_sink)],
        start: Annotated[datetime, Query()],
        end: Annotated[datetime, Query()]
    ) -> Any:
        """
        Retrieves the share of the staff member's open time that is booked.
        """
        utilization = await availability_service.get_staff_utilization(staff_id, start, end)
        audit.record(current_actor.id, "availability.utilization", "Utilization queried", {"staff_id": staff_id})
        return utilization

    async def get_available_staff(
        self,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        service_id: Annotated[UUID, Query()],
        start: Annotated[datetime, Query()],
        end: Annotated[datetime, Query()]
    ) -> list[Any]:
        """
        Lists staff members able to perform the service with at least one free slot.
        """
        return await availability_service.find_available_staff(service_id, start, end)

# Instantiate the class and export its router
availability_api = AvailabilityAPI()
router = availability_api.router
