import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select, desc

from app.core.errors import ConflictError, NotFoundError, ValidationError, parse_choice
from app.core.geofencing import validate_coordinates
from app.core.transactions import transactional
from app.models.ngo import NGO, NGOStaff
from app.models.service import (
    NGOService,
    NGOServiceCreate,
    ServiceDeliveryLog,
    ServiceDeliveryLogCreate,
    ServiceStatus,
)
from app.models.victim import Victim

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5

class ServiceDeliveryLogger:
    """
    Append-only record of assistance actually delivered against an ongoing
    NGO service. The first delivery activates the engagement.
    """

    @transactional
    async def open_service(self, db: AsyncSession, data: NGOServiceCreate) -> NGOService:
        if not data.service_type or not data.service_type.strip():
            raise ValidationError("service_type is required")

        if await db.get(Victim, data.victim_id) is None:
            raise NotFoundError("Victim not found", victim_id=data.victim_id)
        if await db.get(NGO, data.ngo_id) is None:
            raise NotFoundError("NGO not found", ngo_id=data.ngo_id)

        service = NGOService(**data.model_dump(), status=ServiceStatus.PENDING)
        db.add(service)
        await db.commit()

        logger.info(f"Service {service.id} opened: NGO {service.ngo_id} -> victim {service.victim_id}")
        return service

    @transactional
    async def get_service(self, db: AsyncSession, service_id: int, for_update: bool = False) -> NGOService:
        options = {"with_for_update": True, "populate_existing": True} if for_update else {}
        service = await db.get(NGOService, service_id, **options)
        if service is None:
            raise NotFoundError("Service not found", service_id=service_id)
        return service

    @transactional
    async def list_services(
        self,
        db: AsyncSession,
        ngo_id: Optional[int] = None,
        victim_id: Optional[int] = None,
        status: Optional[str] = None
    ) -> List[NGOService]:
        query = select(NGOService)
        if ngo_id is not None:
            query = query.where(NGOService.ngo_id == ngo_id)
        if victim_id is not None:
            query = query.where(NGOService.victim_id == victim_id)
        if status:
            query = query.where(NGOService.status == parse_choice(ServiceStatus, status, "status"))

        result = await db.execute(query.order_by(desc(NGOService.start_date), desc(NGOService.id)))
        return list(result.scalars().all())

    @transactional
    async def log_delivery(
        self,
        db: AsyncSession,
        service_id: int,
        staff_id: int,
        data: ServiceDeliveryLogCreate
    ) -> ServiceDeliveryLog:
        rating = data.effectiveness_rating
        if rating is not None and not (MIN_RATING <= rating <= MAX_RATING):
            raise ValidationError(
                f"Effectiveness rating must be between {MIN_RATING} and {MAX_RATING}",
                effectiveness_rating=rating
            )

        if (data.latitude is None) != (data.longitude is None):
            raise ValidationError("latitude and longitude must be given together")
        if data.latitude is not None:
            validate_coordinates(data.latitude, data.longitude)

        service = await self.get_service(db, service_id, for_update=True)

        staff = await db.get(NGOStaff, staff_id)
        if staff is None:
            raise NotFoundError("Staff member not found", staff_id=staff_id)

        if staff.ngo_id != service.ngo_id:
            raise ConflictError(
                "Staff member must belong to the same NGO as the service provider",
                staff_id=staff_id,
                staff_ngo_id=staff.ngo_id,
                service_ngo_id=service.ngo_id
            )

        fields = data.model_dump(exclude={"service_id", "staff_id", "delivery_date"})
        log = ServiceDeliveryLog(service_id=service_id, staff_id=staff_id, **fields)
        if data.delivery_date is not None:
            log.delivery_date = data.delivery_date

        db.add(log)

        if service.status != ServiceStatus.ACTIVE:
            logger.info(f"Service {service_id} activated by first delivery ({service.status.value} -> active)")
            service.status = ServiceStatus.ACTIVE
            db.add(service)

        await db.commit()

        logger.info(f"Delivery {log.id} logged for service {service_id} by staff {staff_id}")
        return log

    @transactional
    async def list_deliveries(
        self,
        db: AsyncSession,
        service_id: Optional[int] = None,
        staff_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        followup_needed: Optional[bool] = None,
        effectiveness_rating: Optional[int] = None,
        location: Optional[str] = None
    ) -> List[ServiceDeliveryLog]:
        query = select(ServiceDeliveryLog)

        if service_id is not None:
            query = query.where(ServiceDeliveryLog.service_id == service_id)
        if staff_id is not None:
            query = query.where(ServiceDeliveryLog.staff_id == staff_id)
        if start_date is not None:
            query = query.where(ServiceDeliveryLog.delivery_date >= start_date)
        if end_date is not None:
            query = query.where(ServiceDeliveryLog.delivery_date <= end_date)
        if followup_needed is not None:
            query = query.where(ServiceDeliveryLog.followup_needed == followup_needed)
        if effectiveness_rating is not None:
            query = query.where(ServiceDeliveryLog.effectiveness_rating == effectiveness_rating)
        if location:
            query = query.where(
                func.lower(ServiceDeliveryLog.location).contains(location.strip().lower(), autoescape=True)
            )

        result = await db.execute(
            query.order_by(desc(ServiceDeliveryLog.delivery_date), desc(ServiceDeliveryLog.id))
        )
        return list(result.scalars().all())

delivery_logger = ServiceDeliveryLogger()
