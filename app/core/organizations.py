import logging
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.geofencing import Coordinate, can_serve, validate_coordinates
from app.core.transactions import transactional
from app.models.ngo import (
    NGO,
    NGOCreate,
    NGOStaff,
    NGOStaffCreate,
    NGOStaffUpdate,
    ServiceArea,
    ServiceAreaCreate,
    ServiceAreaUpdate,
)
from app.models.service import ServiceDeliveryLog, ServiceRequest

logger = logging.getLogger(__name__)

def _contains(column, text: str):
    return func.lower(column).contains(text.strip().lower(), autoescape=True)

class OrganizationRegistry:
    """NGOs, their staff and the service areas they cover"""

    # NGOs

    @transactional
    async def create_ngo(self, db: AsyncSession, data: NGOCreate) -> NGO:
        if not data.name or not data.name.strip():
            raise ValidationError("name is required")

        ngo = NGO(**data.model_dump())
        db.add(ngo)
        await db.commit()

        logger.info(f"NGO {ngo.id} ({ngo.name}) registered")
        return ngo

    @transactional
    async def get_ngo(self, db: AsyncSession, ngo_id: int) -> NGO:
        ngo = await db.get(NGO, ngo_id)
        if ngo is None:
            raise NotFoundError("NGO not found", ngo_id=ngo_id)
        return ngo

    @transactional
    async def list_ngos(self, db: AsyncSession, is_active: Optional[bool] = None) -> List[NGO]:
        query = select(NGO)
        if is_active is not None:
            query = query.where(NGO.is_active == is_active)

        result = await db.execute(query.order_by(NGO.name, NGO.id))
        return list(result.scalars().all())

    # Staff

    async def _email_taken(self, db: AsyncSession, email: str, exclude_id: Optional[int] = None) -> bool:
        query = select(NGOStaff.id).where(NGOStaff.email == email)
        if exclude_id is not None:
            query = query.where(NGOStaff.id != exclude_id)
        result = await db.execute(query)
        return result.first() is not None

    @transactional
    async def create_staff(self, db: AsyncSession, data: NGOStaffCreate) -> NGOStaff:
        if not data.name or not data.role:
            raise ValidationError("name and role are required")

        await self.get_ngo(db, data.ngo_id)

        if data.email and await self._email_taken(db, data.email):
            raise ConflictError("Email is already in use", email=data.email)

        staff = NGOStaff(**data.model_dump(), is_active=True)
        db.add(staff)
        await db.commit()

        logger.info(f"Staff {staff.id} added to NGO {staff.ngo_id}")
        return staff

    @transactional
    async def get_staff(self, db: AsyncSession, staff_id: int) -> NGOStaff:
        staff = await db.get(NGOStaff, staff_id)
        if staff is None:
            raise NotFoundError("Staff member not found", staff_id=staff_id)
        return staff

    @transactional
    async def staff_activity(self, db: AsyncSession, staff_id: int) -> Tuple[int, int]:
        """Number of service requests answered and deliveries logged"""
        requests = await db.execute(
            select(func.count(ServiceRequest.id)).where(ServiceRequest.responded_by == staff_id)
        )
        deliveries = await db.execute(
            select(func.count(ServiceDeliveryLog.id)).where(ServiceDeliveryLog.staff_id == staff_id)
        )
        return requests.scalar_one(), deliveries.scalar_one()

    @transactional
    async def list_staff(
        self,
        db: AsyncSession,
        ngo_id: Optional[int] = None,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        specialization: Optional[str] = None,
        name: Optional[str] = None
    ) -> List[NGOStaff]:
        query = select(NGOStaff)

        if ngo_id is not None:
            query = query.where(NGOStaff.ngo_id == ngo_id)
        if role:
            query = query.where(_contains(NGOStaff.role, role))
        if is_active is not None:
            query = query.where(NGOStaff.is_active == is_active)
        if specialization:
            query = query.where(_contains(NGOStaff.specialization, specialization))
        if name:
            query = query.where(_contains(NGOStaff.name, name))

        result = await db.execute(query.order_by(NGOStaff.name, NGOStaff.id))
        return list(result.scalars().all())

    @transactional
    async def update_staff(self, db: AsyncSession, staff_id: int, data: NGOStaffUpdate) -> NGOStaff:
        staff = await self.get_staff(db, staff_id)
        changes = data.model_dump(exclude_unset=True)

        for field in ("name", "role", "is_active"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null")

        email = changes.get("email")
        if email and email != staff.email and await self._email_taken(db, email, exclude_id=staff_id):
            raise ConflictError("Email is already in use", email=email)

        for field, value in changes.items():
            setattr(staff, field, value)

        db.add(staff)
        await db.commit()
        return staff

    @transactional
    async def delete_staff(self, db: AsyncSession, staff_id: int) -> None:
        """Only staff with no history can be removed; others are deactivated"""
        staff = await self.get_staff(db, staff_id)

        request_count, delivery_count = await self.staff_activity(db, staff_id)
        if request_count or delivery_count:
            raise ConflictError(
                "Cannot delete staff member with related service records. "
                "Consider marking as inactive instead.",
                service_requests=request_count,
                service_delivery_logs=delivery_count
            )

        await db.delete(staff)
        await db.commit()
        logger.info(f"Staff {staff_id} deleted")

    # Service areas

    def _check_area(self, latitude: float, longitude: float, radius_km: float) -> None:
        validate_coordinates(latitude, longitude)
        if radius_km is None or not radius_km > 0:
            raise ValidationError("radius_km must be greater than 0", radius_km=radius_km)

    @transactional
    async def create_service_area(self, db: AsyncSession, data: ServiceAreaCreate) -> ServiceArea:
        if not data.location_name or not data.location_name.strip():
            raise ValidationError("location_name is required")
        self._check_area(data.latitude, data.longitude, data.radius_km)

        await self.get_ngo(db, data.ngo_id)

        area = ServiceArea(**data.model_dump(), is_active=True)
        db.add(area)
        await db.commit()

        logger.info(
            f"Service area {area.id} for NGO {area.ngo_id}: {area.radius_km} km around "
            f"({area.latitude}, {area.longitude})"
        )
        return area

    @transactional
    async def get_service_area(self, db: AsyncSession, area_id: int) -> ServiceArea:
        area = await db.get(ServiceArea, area_id)
        if area is None:
            raise NotFoundError("Service area not found", service_area_id=area_id)
        return area

    @transactional
    async def list_service_areas(
        self,
        db: AsyncSession,
        ngo_id: Optional[int] = None,
        is_active: Optional[bool] = None,
        location_name: Optional[str] = None
    ) -> List[ServiceArea]:
        query = select(ServiceArea)

        if ngo_id is not None:
            query = query.where(ServiceArea.ngo_id == ngo_id)
        if is_active is not None:
            query = query.where(ServiceArea.is_active == is_active)
        if location_name:
            query = query.where(_contains(ServiceArea.location_name, location_name))

        result = await db.execute(query.order_by(ServiceArea.id))
        return list(result.scalars().all())

    @transactional
    async def update_service_area(self, db: AsyncSession, area_id: int, data: ServiceAreaUpdate) -> ServiceArea:
        area = await self.get_service_area(db, area_id)
        changes = data.model_dump(exclude_unset=True)

        for field in ("location_name", "latitude", "longitude", "radius_km", "is_active"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null")

        self._check_area(
            changes.get("latitude", area.latitude),
            changes.get("longitude", area.longitude),
            changes.get("radius_km", area.radius_km)
        )

        for field, value in changes.items():
            setattr(area, field, value)

        db.add(area)
        await db.commit()
        return area

    @transactional
    async def delete_service_area(self, db: AsyncSession, area_id: int) -> None:
        area = await self.get_service_area(db, area_id)
        await db.delete(area)
        await db.commit()

    @transactional
    async def check_coverage(self, db: AsyncSession, ngo_id: int, point: Coordinate) -> bool:
        await self.get_ngo(db, ngo_id)
        areas = await self.list_service_areas(db, ngo_id=ngo_id, is_active=True)
        return can_serve(ngo_id, point, areas)

organization_registry = OrganizationRegistry()
