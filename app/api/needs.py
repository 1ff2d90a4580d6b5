from fastapi import APIRouter
from datetime import datetime
from typing import List, Optional

from app.database import SessionDep
from app.core.needs import need_registry
from app.models.ngo import NGORead
from app.models.service import ServiceRequestRead, VictimNeedDetail
from app.models.victim import VictimNeedCreate, VictimNeedRead, VictimNeedUpdate

router = APIRouter()

@router.post("", response_model=VictimNeedRead, status_code=201)
async def identify_need(db: SessionDep, need_data: VictimNeedCreate):
    return await need_registry.identify(
        db,
        victim_id=need_data.victim_id,
        need_type=need_data.need_type,
        urgency_level=need_data.urgency_level,
        notes=need_data.notes
    )

@router.get("", response_model=List[VictimNeedRead])
async def list_needs(
    db: SessionDep,
    victim_id: Optional[int] = None,
    need_type: Optional[str] = None,
    urgency_level: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None
):
    return await need_registry.list_needs(
        db,
        victim_id=victim_id,
        need_type=need_type,
        urgency_level=urgency_level,
        status=status,
        start_date=start_date,
        end_date=end_date
    )

@router.get("/{need_id}", response_model=VictimNeedDetail)
async def get_need(db: SessionDep, need_id: int) -> VictimNeedDetail:
    """A need with the requests raised for it and NGOs that could help"""
    need = await need_registry.get(db, need_id)
    requests = await need_registry.related_requests(db, need)
    ngos = await need_registry.find_matching_ngos(db, need)

    return VictimNeedDetail(
        **VictimNeedRead.model_validate(need).model_dump(),
        service_requests=[ServiceRequestRead.model_validate(request) for request in requests],
        matching_ngos=[NGORead.model_validate(ngo) for ngo in ngos]
    )

@router.put("/{need_id}", response_model=VictimNeedRead)
async def update_need(db: SessionDep, need_id: int, need_data: VictimNeedUpdate):
    return await need_registry.update(db, need_id, need_data)

@router.post("/{need_id}/resolve", response_model=VictimNeedRead)
async def resolve_need(db: SessionDep, need_id: int):
    return await need_registry.resolve(db, need_id)

@router.delete("/{need_id}")
async def delete_need(db: SessionDep, need_id: int) -> dict[str, str]:
    await need_registry.delete(db, need_id)
    return {"message": "Victim need deleted successfully"}
