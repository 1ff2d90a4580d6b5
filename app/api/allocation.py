from fastapi import APIRouter, HTTPException
from typing import Optional

from app.database import SessionDep
from app.core.allocation import allocation_engine
from app.core.geofencing import Coordinate
from app.models.ngo import AllocationResponse, NGOCandidateRead, NGORead, ResourceInventoryRead

router = APIRouter()

@router.get("", response_model=AllocationResponse)
async def allocate_ngos(
    db: SessionDep,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    event_id: Optional[int] = None,
    need_type: Optional[str] = None,
    max_distance: Optional[float] = None,
    unique_ngos: bool = False
) -> AllocationResponse:
    """Find NGOs able to serve a point or an event's stored location"""
    if event_id is None and (latitude is None or longitude is None):
        raise HTTPException(
            status_code=400,
            detail="Either coordinates (latitude/longitude) or event_id is required"
        )

    location = None if event_id is not None else Coordinate(latitude=latitude, longitude=longitude)

    candidates = await allocation_engine.allocate(
        db,
        location=location,
        event_id=event_id,
        need_type=need_type or None,
        max_distance_km=max_distance,
        unique_ngos=unique_ngos
    )

    ngos = [
        NGOCandidateRead(
            ngo_id=candidate.ngo_id,
            service_area_id=candidate.service_area_id,
            distance_km=round(candidate.distance_km, 3),
            ngo_info=NGORead.model_validate(candidate.ngo),
            available_resources=(
                [ResourceInventoryRead.model_validate(item) for item in candidate.available_resources]
                if candidate.available_resources is not None else None
            )
        )
        for candidate in candidates
    ]

    return AllocationResponse(ngos=ngos, total=len(ngos))
