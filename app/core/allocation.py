import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import NotFoundError, ValidationError
from app.core.geofencing import Coordinate, dedupe_by_ngo, find_ngos_in_radius, validate_coordinates
from app.core.inventory import ResourceInventoryLedger, inventory_ledger
from app.core.matching import NeedMatcher, ngo_matches_need, substring_match
from app.core.transactions import transactional
from app.models.ngo import NGO, ResourceInventoryItem, ServiceArea
from app.models.victim import Event

logger = logging.getLogger(__name__)

@dataclass
class NGOCandidate:
    ngo_id: int
    service_area_id: Optional[int]
    distance_km: float
    ngo: NGO
    available_resources: Optional[List[ResourceInventoryItem]] = None

class AllocationEngine:
    """
    Proposes NGOs for a location: service-area coverage first, then an
    optional need-type filter with the matching stock attached.
    """

    def __init__(
        self,
        inventory: ResourceInventoryLedger = inventory_ledger,
        matcher: NeedMatcher = substring_match
    ):
        self.inventory = inventory
        self.matcher = matcher

    @transactional
    async def resolve_location(
        self,
        db: AsyncSession,
        location: Optional[Coordinate] = None,
        event_id: Optional[int] = None
    ) -> Coordinate:
        """
        Turn the caller's location into a Coordinate.
        An event without stored coordinates (geocoding failed or never ran)
        is reported as NotFoundError rather than treated as a fault.
        """
        if event_id is not None:
            event = await db.get(Event, event_id)
            if event is None:
                raise NotFoundError("Event not found", event_id=event_id)
            if event.latitude is None or event.longitude is None:
                raise NotFoundError("Event has no location data", event_id=event_id)
            return Coordinate(latitude=event.latitude, longitude=event.longitude)

        if location is None:
            raise ValidationError("Either coordinates (latitude/longitude) or event_id is required")

        return validate_coordinates(location.latitude, location.longitude)

    async def _active_areas(self, db: AsyncSession, max_distance_km: Optional[float]) -> List[ServiceArea]:
        query = (
            select(ServiceArea)
            .join(NGO, NGO.id == ServiceArea.ngo_id)
            .where(ServiceArea.is_active == True, NGO.is_active == True)
        )
        if max_distance_km is not None:
            query = query.where(ServiceArea.radius_km <= max_distance_km)

        result = await db.execute(query)
        return list(result.scalars().all())

    @transactional
    async def allocate(
        self,
        db: AsyncSession,
        location: Optional[Coordinate] = None,
        event_id: Optional[int] = None,
        need_type: Optional[str] = None,
        max_distance_km: Optional[float] = None,
        unique_ngos: bool = False,
        as_of: Optional[date] = None
    ) -> List[NGOCandidate]:
        """
        Args:
            location: target point; ignored when event_id is given
            event_id: use the event's stored coordinate instead
            need_type: restrict to NGOs whose focus/support type matches, and
                attach their available, unexpired resources of that type
            max_distance_km: only consider areas whose radius is at most this
            unique_ngos: collapse NGOs with several covering areas to the nearest
            as_of: reference date for resource expiry (defaults to today)
        """
        if max_distance_km is not None and max_distance_km <= 0:
            raise ValidationError("max_distance must be positive", max_distance=max_distance_km)

        point = await self.resolve_location(db, location, event_id)
        areas = await self._active_areas(db, max_distance_km)

        matches = find_ngos_in_radius(point, areas)
        if unique_ngos:
            matches = dedupe_by_ngo(matches)

        if not matches:
            logger.info(f"No NGO coverage at ({point.latitude}, {point.longitude})")
            return []

        ngo_ids = sorted({match.ngo_id for match in matches})
        result = await db.execute(select(NGO).where(NGO.id.in_(ngo_ids)))
        ngos: Dict[int, NGO] = {ngo.id: ngo for ngo in result.scalars()}

        if need_type:
            matches = [
                match for match in matches
                if ngo_matches_need(ngos[match.ngo_id], need_type, self.matcher)
            ]

        candidates = [
            NGOCandidate(
                ngo_id=match.ngo_id,
                service_area_id=match.service_area_id,
                distance_km=match.distance_km,
                ngo=ngos[match.ngo_id]
            )
            for match in matches
        ]

        if need_type and candidates:
            resources = await self.inventory.list_available(
                db,
                resource_type=need_type,
                not_expired_as_of=as_of or date.today(),
                ngo_ids={candidate.ngo_id for candidate in candidates}
            )
            by_ngo: Dict[int, List[ResourceInventoryItem]] = {}
            for resource in resources:
                by_ngo.setdefault(resource.ngo_id, []).append(resource)

            for candidate in candidates:
                candidate.available_resources = by_ngo.get(candidate.ngo_id, [])

        logger.info(
            f"Allocation at ({point.latitude}, {point.longitude}) need={need_type!r}: "
            f"{len(candidates)} candidate(s)"
        )
        return candidates

allocation_engine = AllocationEngine()
