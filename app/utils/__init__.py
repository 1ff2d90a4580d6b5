"""
Utility modules for the Relief Allocation API

This package contains clients for services outside the allocation core:
- geocoding: Address to coordinate lookup used when events are stored
"""

from .geocoding import (
    GeocodingService,
    geocoding_service
)

__all__ = [
    "GeocodingService",
    "geocoding_service"
]
