from sqlmodel import SQLModel, Field, Column, DateTime
from datetime import date, datetime, timezone
from typing import Optional, List

class NGOBase(SQLModel):
    name: str
    contact: Optional[str] = None
    email: Optional[str] = None
    support_type: Optional[str] = None  # e.g. "Medical, Food"
    focus_area: Optional[str] = None

class NGO(NGOBase, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    is_active: bool = True
    is_verified: bool = False
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )

class NGOCreate(NGOBase):
    pass

class NGORead(NGOBase):
    id: int
    is_active: bool
    is_verified: bool

# Staff

class NGOStaffBase(SQLModel):
    name: str
    role: str
    contact: Optional[str] = None
    email: Optional[str] = None
    specialization: Optional[str] = None

class NGOStaff(NGOStaffBase, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    ngo_id: int = Field(foreign_key="ngo.id", index=True)
    email: Optional[str] = Field(default=None, unique=True)
    is_active: bool = True
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )

class NGOStaffCreate(NGOStaffBase):
    ngo_id: int

class NGOStaffRead(NGOStaffBase):
    id: int
    ngo_id: int
    is_active: bool

class NGOStaffDetail(NGOStaffRead):
    service_request_count: int = 0
    delivery_log_count: int = 0

class NGOStaffUpdate(SQLModel):
    name: Optional[str] = None
    role: Optional[str] = None
    contact: Optional[str] = None
    email: Optional[str] = None
    specialization: Optional[str] = None
    is_active: Optional[bool] = None

# Service areas

class ServiceAreaBase(SQLModel):
    location_name: str
    latitude: float
    longitude: float
    radius_km: float

class ServiceArea(ServiceAreaBase, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    ngo_id: int = Field(foreign_key="ngo.id", index=True)
    is_active: bool = True

class ServiceAreaCreate(ServiceAreaBase):
    ngo_id: int

class ServiceAreaRead(ServiceAreaBase):
    id: int
    ngo_id: int
    is_active: bool

class ServiceAreaUpdate(SQLModel):
    location_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_km: Optional[float] = None
    is_active: Optional[bool] = None

# Resource inventory

class ResourceInventoryBase(SQLModel):
    resource_type: str  # free text category, e.g. "Medical"
    resource_name: str
    quantity: int
    unit: Optional[str] = None
    expiry_date: Optional[date] = None
    notes: Optional[str] = None

class ResourceInventoryItem(ResourceInventoryBase, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    ngo_id: int = Field(foreign_key="ngo.id", index=True)
    is_available: bool = True
    last_updated: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )

class ResourceInventoryCreate(ResourceInventoryBase):
    ngo_id: int

class ResourceInventoryRead(ResourceInventoryBase):
    id: int
    ngo_id: int
    is_available: bool
    last_updated: datetime

class ResourceInventoryUpdate(SQLModel):
    resource_type: Optional[str] = None
    resource_name: Optional[str] = None
    quantity: Optional[int] = None
    unit: Optional[str] = None
    expiry_date: Optional[date] = None
    is_available: Optional[bool] = None
    notes: Optional[str] = None

class ConsumeRequest(SQLModel):
    amount: int

# Allocation results

class NGOCandidateRead(SQLModel):
    ngo_id: int
    service_area_id: int
    distance_km: float
    ngo_info: Optional[NGORead] = None
    available_resources: Optional[List[ResourceInventoryRead]] = None

class AllocationResponse(SQLModel):
    ngos: List[NGOCandidateRead]
    total: int
