from fastapi import APIRouter
from typing import Any, List, Optional

from app.database import SessionDep
from app.core.geofencing import validate_coordinates
from app.core.organizations import organization_registry
from app.models.ngo import (
    NGOCreate,
    NGORead,
    NGOStaffCreate,
    NGOStaffDetail,
    NGOStaffRead,
    NGOStaffUpdate,
    ServiceAreaCreate,
    ServiceAreaRead,
    ServiceAreaUpdate,
)

ngo_router = APIRouter()
staff_router = APIRouter()
area_router = APIRouter()

# NGOs

@ngo_router.post("", response_model=NGORead, status_code=201)
async def register_ngo(db: SessionDep, ngo_data: NGOCreate):
    return await organization_registry.create_ngo(db, ngo_data)

@ngo_router.get("", response_model=List[NGORead])
async def list_ngos(db: SessionDep, is_active: Optional[bool] = None):
    return await organization_registry.list_ngos(db, is_active=is_active)

@ngo_router.get("/{ngo_id}", response_model=NGORead)
async def get_ngo(db: SessionDep, ngo_id: int):
    return await organization_registry.get_ngo(db, ngo_id)

# Staff

@staff_router.post("", response_model=NGOStaffRead, status_code=201)
async def create_staff(db: SessionDep, staff_data: NGOStaffCreate):
    return await organization_registry.create_staff(db, staff_data)

@staff_router.get("", response_model=List[NGOStaffRead])
async def list_staff(
    db: SessionDep,
    ngo_id: Optional[int] = None,
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
    specialization: Optional[str] = None,
    name: Optional[str] = None
):
    return await organization_registry.list_staff(
        db,
        ngo_id=ngo_id,
        role=role,
        is_active=is_active,
        specialization=specialization,
        name=name
    )

@staff_router.get("/{staff_id}", response_model=NGOStaffDetail)
async def get_staff(db: SessionDep, staff_id: int) -> NGOStaffDetail:
    staff = await organization_registry.get_staff(db, staff_id)
    request_count, delivery_count = await organization_registry.staff_activity(db, staff_id)

    return NGOStaffDetail(
        **NGOStaffRead.model_validate(staff).model_dump(),
        service_request_count=request_count,
        delivery_log_count=delivery_count
    )

@staff_router.put("/{staff_id}", response_model=NGOStaffRead)
async def update_staff(db: SessionDep, staff_id: int, staff_data: NGOStaffUpdate):
    return await organization_registry.update_staff(db, staff_id, staff_data)

@staff_router.delete("/{staff_id}")
async def delete_staff(db: SessionDep, staff_id: int) -> dict[str, str]:
    await organization_registry.delete_staff(db, staff_id)
    return {"message": "Staff member deleted successfully"}

# Service areas

@area_router.post("", response_model=ServiceAreaRead, status_code=201)
async def create_service_area(db: SessionDep, area_data: ServiceAreaCreate):
    return await organization_registry.create_service_area(db, area_data)

@area_router.get("", response_model=List[ServiceAreaRead])
async def list_service_areas(
    db: SessionDep,
    ngo_id: Optional[int] = None,
    is_active: Optional[bool] = None,
    location_name: Optional[str] = None
):
    return await organization_registry.list_service_areas(
        db,
        ngo_id=ngo_id,
        is_active=is_active,
        location_name=location_name
    )

@area_router.get("/coverage")
async def check_coverage(
    db: SessionDep,
    ngo_id: int,
    latitude: float,
    longitude: float
) -> dict[str, Any]:
    """Whether an NGO has an active service area containing the point"""
    point = validate_coordinates(latitude, longitude)
    covered = await organization_registry.check_coverage(db, ngo_id, point)

    return {
        "ngo_id": ngo_id,
        "location": point.to_dict(),
        "can_serve": covered
    }

@area_router.get("/{area_id}", response_model=ServiceAreaRead)
async def get_service_area(db: SessionDep, area_id: int):
    return await organization_registry.get_service_area(db, area_id)

@area_router.put("/{area_id}", response_model=ServiceAreaRead)
async def update_service_area(db: SessionDep, area_id: int, area_data: ServiceAreaUpdate):
    return await organization_registry.update_service_area(db, area_id, area_data)

@area_router.delete("/{area_id}")
async def delete_service_area(db: SessionDep, area_id: int) -> dict[str, str]:
    await organization_registry.delete_service_area(db, area_id)
    return {"message": "Service area deleted successfully"}
