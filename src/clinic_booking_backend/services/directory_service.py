'''
Read access to the records owned by other parts of the practice system:
staff, services, locations. Everything the engine needs to know about
identity and roles goes through here.
'''
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..common.exceptions import NotFound
from ..common.logger import log
from ..database import models as db_models
from ..database.db_enums import StaffRole, role_satisfies
from ..database.engine import get_db_session


class DirectoryService:
    """
    Service for looking up staff members, service definitions and locations.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_staff(self, staff_id: UUID) -> db_models.Staff:
        """Fetches an active staff member with their location loaded. Raises NotFound."""
        stmt = select(db_models.Staff).options(
            selectinload(db_models.Staff.location)
        ).filter(db_models.Staff.id == staff_id)
        result = await self.db.execute(stmt)
        staff = result.scalars().first()
        if not staff or not staff.is_active:
            log.warning(f"Tried to fetch non-existing or inactive staff member: {staff_id}")
            raise NotFound(f"Staff member {staff_id} not found.", {"staff_id": str(staff_id)})
        return staff

    async def get_service(self, service_id: UUID) -> db_models.ServiceDefinitions:
        """Fetches a service definition with its assigned rooms and devices. Raises NotFound."""
        stmt = select(db_models.ServiceDefinitions).options(
            selectinload(db_models.ServiceDefinitions.assigned_rooms),
            selectinload(db_models.ServiceDefinitions.assigned_devices),
        ).filter(db_models.ServiceDefinitions.id == service_id)
        result = await self.db.execute(stmt)
        service = result.scalars().first()
        if not service or not service.is_active:
            log.warning(f"Tried to fetch non-existing or inactive service: {service_id}")
            raise NotFound(f"Service {service_id} not found.", {"service_id": str(service_id)})
        return service

    async def get_location(self, location_id: UUID) -> db_models.Locations:
        location = await self.db.get(db_models.Locations, location_id)
        if not location:
            log.warning(f"Tried to fetch non-existing location: {location_id}")
            raise NotFound(f"Location {location_id} not found.", {"location_id": str(location_id)})
        return location

    async def list_active_staff(self, required_role: Optional[StaffRole | str] = None) -> list[db_models.Staff]:
        """All active staff members whose role satisfies `required_role` (any role when None)."""
        stmt = select(db_models.Staff).options(
            selectinload(db_models.Staff.location)
        ).filter(db_models.Staff.is_active.is_(True)).order_by(db_models.Staff.display_name)
        result = await self.db.execute(stmt)
        return [s for s in result.scalars().all() if role_satisfies(s.role, required_role)]
