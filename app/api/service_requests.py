from fastapi import APIRouter, Depends
from datetime import datetime
from typing import List, Optional

from app.database import SessionDep
from app.api.auth import get_acting_staff_id
from app.core.service_requests import service_request_workflow
from app.models.service import (
    ServiceItem,
    ServiceItemRead,
    ServiceRequest,
    ServiceRequestCreate,
    ServiceRequestDetail,
    ServiceRequestRead,
    ServiceRequestUpdate,
)

router = APIRouter()

def _detail(request: ServiceRequest, items: List[ServiceItem]) -> ServiceRequestDetail:
    return ServiceRequestDetail(
        **ServiceRequestRead.model_validate(request).model_dump(),
        service_items=[ServiceItemRead.model_validate(item) for item in items]
    )

@router.post("", response_model=ServiceRequestDetail, status_code=201)
async def create_service_request(
    db: SessionDep,
    request_data: ServiceRequestCreate
) -> ServiceRequestDetail:
    request, items = await service_request_workflow.create(
        db,
        victim_id=request_data.victim_id,
        ngo_id=request_data.ngo_id,
        request_type=request_data.request_type,
        urgency_level=request_data.urgency_level,
        notes=request_data.notes,
        items=request_data.service_items
    )
    return _detail(request, items)

@router.get("", response_model=List[ServiceRequestRead])
async def list_service_requests(
    db: SessionDep,
    ngo_id: Optional[int] = None,
    victim_id: Optional[int] = None,
    status: Optional[str] = None,
    request_type: Optional[str] = None,
    urgency_level: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    staff_id: Optional[int] = None
):
    return await service_request_workflow.list_requests(
        db,
        ngo_id=ngo_id,
        victim_id=victim_id,
        status=status,
        request_type=request_type,
        urgency_level=urgency_level,
        start_date=start_date,
        end_date=end_date,
        staff_id=staff_id
    )

@router.get("/{request_id}", response_model=ServiceRequestDetail)
async def get_service_request(db: SessionDep, request_id: int) -> ServiceRequestDetail:
    request, items = await service_request_workflow.get_detail(db, request_id)
    return _detail(request, items)

@router.put("/{request_id}", response_model=ServiceRequestDetail)
async def update_service_request(
    db: SessionDep,
    request_id: int,
    update_data: ServiceRequestUpdate,
    acting_staff_id: Optional[int] = Depends(get_acting_staff_id)
) -> ServiceRequestDetail:
    staff_id = update_data.staff_id if update_data.staff_id is not None else acting_staff_id

    request, items = await service_request_workflow.update_status(
        db,
        request_id,
        new_status=update_data.status,
        staff_id=staff_id,
        service_items=update_data.service_items,
        urgency_level=update_data.urgency_level,
        notes=update_data.notes
    )
    return _detail(request, items)

@router.delete("/{request_id}")
async def delete_service_request(db: SessionDep, request_id: int) -> dict[str, str]:
    await service_request_workflow.delete(db, request_id)
    return {"message": "Service request deleted successfully"}
