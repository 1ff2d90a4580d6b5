from fastapi import APIRouter, Depends, HTTPException
from datetime import datetime
from typing import List, Optional

from app.database import SessionDep
from app.api.auth import get_acting_staff_id
from app.core.deliveries import delivery_logger
from app.models.service import (
    NGOServiceCreate,
    NGOServiceRead,
    ServiceDeliveryLogCreate,
    ServiceDeliveryLogRead,
)

router = APIRouter()
services_router = APIRouter()

@router.post("", response_model=ServiceDeliveryLogRead, status_code=201)
async def log_service_delivery(
    db: SessionDep,
    delivery_data: ServiceDeliveryLogCreate,
    acting_staff_id: Optional[int] = Depends(get_acting_staff_id)
):
    staff_id = delivery_data.staff_id if delivery_data.staff_id is not None else acting_staff_id
    if staff_id is None:
        raise HTTPException(status_code=400, detail="staff_id is required")

    return await delivery_logger.log_delivery(
        db,
        service_id=delivery_data.service_id,
        staff_id=staff_id,
        data=delivery_data
    )

@router.get("", response_model=List[ServiceDeliveryLogRead])
async def list_service_deliveries(
    db: SessionDep,
    service_id: Optional[int] = None,
    staff_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    followup_needed: Optional[bool] = None,
    effectiveness_rating: Optional[int] = None,
    location: Optional[str] = None
):
    return await delivery_logger.list_deliveries(
        db,
        service_id=service_id,
        staff_id=staff_id,
        start_date=start_date,
        end_date=end_date,
        followup_needed=followup_needed,
        effectiveness_rating=effectiveness_rating,
        location=location
    )

# Ongoing NGO services that deliveries are logged against

@services_router.post("", response_model=NGOServiceRead, status_code=201)
async def open_service(db: SessionDep, service_data: NGOServiceCreate):
    return await delivery_logger.open_service(db, service_data)

@services_router.get("", response_model=List[NGOServiceRead])
async def list_services(
    db: SessionDep,
    ngo_id: Optional[int] = None,
    victim_id: Optional[int] = None,
    status: Optional[str] = None
):
    return await delivery_logger.list_services(db, ngo_id=ngo_id, victim_id=victim_id, status=status)

@services_router.get("/{service_id}", response_model=NGOServiceRead)
async def get_service(db: SessionDep, service_id: int):
    return await delivery_logger.get_service(db, service_id)
