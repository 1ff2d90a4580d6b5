import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol

from app.core.errors import ValidationError

EARTH_RADIUS_KM = 6371.0

@dataclass(frozen=True)
class Coordinate:
    """A recorded position in decimal degrees; re-geocoding makes a new one"""
    latitude: float
    longitude: float

    def to_dict(self) -> dict:
        return {"latitude": self.latitude, "longitude": self.longitude}

class CoverageArea(Protocol):
    ngo_id: int
    latitude: float
    longitude: float
    radius_km: float
    is_active: bool

@dataclass
class AreaMatch:
    ngo_id: int
    service_area_id: Optional[int]
    distance_km: float

def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points using Haversine formula
    Returns distance in kilometers
    """
    lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = math.sin(dlat/2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon/2)**2
    # rounding can push antipodal points a hair over 1
    c = 2 * math.asin(math.sqrt(min(1.0, a)))

    return EARTH_RADIUS_KM * c

def distance_km(a: Coordinate, b: Coordinate) -> float:
    return calculate_distance(a.latitude, a.longitude, b.latitude, b.longitude)

def validate_coordinates(latitude: float, longitude: float) -> Coordinate:
    """
    Range-check a coordinate pair before it is used for matching.
    Raises ValidationError listing every problem found.
    """
    errors = []

    if latitude is None or not math.isfinite(latitude) or not (-90 <= latitude <= 90):
        errors.append("Invalid latitude: must be between -90 and 90")

    if longitude is None or not math.isfinite(longitude) or not (-180 <= longitude <= 180):
        errors.append("Invalid longitude: must be between -180 and 180")

    if errors:
        raise ValidationError("Invalid coordinates", errors=errors)

    return Coordinate(latitude=latitude, longitude=longitude)

def _is_matchable(area: CoverageArea) -> bool:
    return (
        bool(area.is_active)
        and area.radius_km is not None
        and area.radius_km > 0
        and area.latitude is not None
        and area.longitude is not None
    )

def _has_position(point: Optional[Coordinate]) -> bool:
    return point is not None and point.latitude is not None and point.longitude is not None

def find_ngos_in_radius(point: Optional[Coordinate], areas: Iterable[CoverageArea]) -> List[AreaMatch]:
    """
    Find every active service area whose circle contains the point.

    One entry per qualifying area, so an NGO with overlapping areas shows up
    more than once (see dedupe_by_ngo). Sorted nearest first, ties by NGO id.
    A point without both coordinates, or no areas, means no coverage.
    """
    if not _has_position(point):
        return []

    matches: List[AreaMatch] = []

    for area in areas:
        if not _is_matchable(area):
            continue

        distance = calculate_distance(
            point.latitude, point.longitude,
            area.latitude, area.longitude
        )

        if distance <= area.radius_km:
            matches.append(AreaMatch(
                ngo_id=area.ngo_id,
                service_area_id=getattr(area, "id", None),
                distance_km=distance
            ))

    matches.sort(key=lambda m: (m.distance_km, m.ngo_id))
    return matches

def can_serve(ngo_id: int, point: Optional[Coordinate], areas: Iterable[CoverageArea]) -> bool:
    """Check if a specific NGO has an active area covering the point"""
    ngo_areas = [area for area in areas if area.ngo_id == ngo_id]
    return bool(find_ngos_in_radius(point, ngo_areas))

def dedupe_by_ngo(matches: Iterable[AreaMatch]) -> List[AreaMatch]:
    """Keep only the nearest area per NGO, preserving order"""
    seen: set[int] = set()
    unique: List[AreaMatch] = []

    for match in matches:
        if match.ngo_id in seen:
            continue
        seen.add(match.ngo_id)
        unique.append(match)

    return unique
