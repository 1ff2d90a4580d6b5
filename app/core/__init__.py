"""
Core modules for the Relief Allocation API

This package contains the allocation engine and its building blocks:
- geofencing: Haversine distance and service-area matching
- inventory: NGO resource stock and consumption
- needs: Victim need registry
- allocation: Candidate NGOs for a location and need
- service_requests: Service request state machine
- deliveries: Service delivery log
- organizations: NGOs, staff and service areas
- cases: Disaster events and registered victims
"""

from .geofencing import (
    Coordinate,
    calculate_distance,
    distance_km,
    find_ngos_in_radius,
    can_serve,
    dedupe_by_ngo,
    validate_coordinates
)

from .inventory import (
    ResourceInventoryLedger,
    inventory_ledger
)

from .needs import (
    NeedRegistry,
    need_registry
)

from .allocation import (
    AllocationEngine,
    NGOCandidate,
    allocation_engine
)

from .service_requests import (
    ServiceRequestWorkflow,
    service_request_workflow
)

from .deliveries import (
    ServiceDeliveryLogger,
    delivery_logger
)

from .organizations import (
    OrganizationRegistry,
    organization_registry
)

from .cases import (
    CaseRegistry,
    case_registry
)

__all__ = [
    # Geofencing
    "Coordinate",
    "calculate_distance",
    "distance_km",
    "find_ngos_in_radius",
    "can_serve",
    "dedupe_by_ngo",
    "validate_coordinates",

    # Services
    "ResourceInventoryLedger",
    "inventory_ledger",
    "NeedRegistry",
    "need_registry",
    "AllocationEngine",
    "NGOCandidate",
    "allocation_engine",
    "ServiceRequestWorkflow",
    "service_request_workflow",
    "ServiceDeliveryLogger",
    "delivery_logger",
    "OrganizationRegistry",
    "organization_registry",
    "CaseRegistry",
    "case_registry"
]
