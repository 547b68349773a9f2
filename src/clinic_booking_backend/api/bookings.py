'''
API endpoints for creating and managing bookings (the write path).
'''
from typing import Annotated, Any
from uuid import UUID
from fastapi import APIRouter, Depends, status

from ..models import booking as booking_models
from ..models.token import Actor
from ..services.booking_service import BookingService
from ..services.security import get_current_actor

class BookingsAPI:
    """
    A class to encapsulate the booking endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/bookings",
            tags=["Bookings"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/",
                self.create_booking,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=booking_models.BookingRead)

        self.router.add_api_route(
                "/check",
                self.check_booking,
                methods=["POST"],
                response_model=booking_models.BookingCheckResult)

        self.router.add_api_route(
                "/{booking_id}",
                self.get_booking,
                methods=["GET"],
                response_model=booking_models.BookingRead)

        self.router.add_api_route(
                "/{booking_id}/cancel",
                self.cancel_booking,
                methods=["POST"],
                response_model=booking_models.BookingRead)

        self.router.add_api_route(
                "/{booking_id}/status",
                self.update_status,
                methods=["PATCH"],
                response_model=booking_models.BookingRead)

    async def create_booking(
        self,
        booking_data: booking_models.BookingRequest,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        """
        Books a slot. Fails with 409 if anything got in the way since the slot was listed.
        """
        return await booking_service.create_booking(booking_data, current_actor.id)

    async def check_booking(
        self,
        booking_data: booking_models.BookingRequest,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        """
        Validates a booking request without reserving anything.
        """
        return await booking_service.check_booking(booking_data)

    async def get_booking(
        self,
        booking_id: UUID,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        return await booking_service.get_booking(booking_id)

    async def cancel_booking(
        self,
        booking_id: UUID,
        cancel_data: booking_models.BookingCancel,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        """
        Cancels a booking and releases its resources.
        """
        return await booking_service.cancel_booking(booking_id, current_actor.id, cancel_data.reason)

    async def update_status(
        self,
        booking_id: UUID,
        status_data: booking_models.BookingStatusUpdate,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        return await booking_service.update_status(booking_id, status_data.status, current_actor.id)

# Instantiate the class and export its router
bookings_api = BookingsAPI()
router = bookings_api.router
