'''
API endpoints for staff absences.
'''
from typing import Annotated, Any, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from ..database.db_enums import AbsenceStatus
from ..models import absence as absence_models
from ..models.token import Actor
from ..services.absence_service import AbsenceService
from ..services.security import get_current_actor

class AbsencesAPI:
    """
    A class to encapsulate the absence lifecycle endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/absences",
            tags=["Absences"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/",
                self.list_absences,
                methods=["GET"],
                response_model=list[absence_models.AbsenceRead])

        self.router.add_api_route(
                "/",
                self.create_absence,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=absence_models.AbsenceRead)

        self.router.add_api_route(
                "/{absence_id}/decision",
                self.decide_absence,
                methods=["PATCH"],
                response_model=absence_models.AbsenceRead)

        self.router.add_api_route(
                "/{absence_id}/cancel",
                self.cancel_absence,
                methods=["POST"],
                response_model=absence_models.AbsenceRead)

    async def list_absences(
        self,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        absence_service: Annotated[AbsenceService, Depends(AbsenceService)],
        staff_id: Annotated[UUID, Query()],
        absence_status: Annotated[Optional[AbsenceStatus], Query(alias="status")] = None
    ) -> list[Any]:
        return await absence_service.list_absences(staff_id, absence_status)

    async def create_absence(
        self,
        absence_data: absence_models.AbsenceCreate,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        absence_service: Annotated[AbsenceService, Depends(AbsenceService)]
    ) -> Any:
        """
        Requests an absence. It stays pending until approved.
        """
        return await absence_service.create_absence(absence_data, current_actor.id)

    async def decide_absence(
        self,
        absence_id: UUID,
        decision: absence_models.AbsenceDecision,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        absence_service: Annotated[AbsenceService, Depends(AbsenceService)]
    ) -> Any:
        """
        Approves or rejects a pending absence.
        """
        return await absence_service.decide_absence(absence_id, decision, current_actor.id)

    async def cancel_absence(
        self,
        absence_id: UUID,
        current_actor: Annotated[Actor, Depends(get_current_actor)],
        absence_service: Annotated[AbsenceService, Depends(AbsenceService)]
    ) -> Any:
        return await absence_service.cancel_absence(absence_id, current_actor.id)

# Instantiate the class and export its router
absences_api = AbsencesAPI()
router = absences_api.router
