from sqlmodel import SQLModel, Field, Column, DateTime
from datetime import datetime, timezone
from typing import Optional, List
from enum import Enum

from app.models.ngo import NGORead
from app.models.victim import UrgencyLevel, VictimNeedRead

class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DENIED = "denied"

class ItemStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

class ServiceStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

# Service requests

class ServiceRequestBase(SQLModel):
    request_type: str
    notes: Optional[str] = None

class ServiceRequest(ServiceRequestBase, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    victim_id: int = Field(foreign_key="victim.id", index=True)
    ngo_id: int = Field(foreign_key="ngo.id", index=True)
    urgency_level: UrgencyLevel
    status: RequestStatus = RequestStatus.PENDING
    request_date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )
    responded_by: Optional[int] = Field(default=None, foreign_key="ngostaff.id")
    response_date: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )
    completion_date: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )

class ServiceItemBase(SQLModel):
    service_type: str
    quantity: int = 1
    notes: Optional[str] = None

class ServiceItem(ServiceItemBase, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    request_id: int = Field(foreign_key="servicerequest.id", index=True)
    inventory_id: Optional[int] = Field(default=None, foreign_key="resourceinventoryitem.id", index=True)
    status: ItemStatus = ItemStatus.PENDING
    delivery_date: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )

class ServiceItemCreate(ServiceItemBase):
    inventory_id: Optional[int] = None

class ServiceItemUpsert(SQLModel):
    """Item change inside a status update; no id means a new item."""
    service_item_id: Optional[int] = None
    service_type: Optional[str] = None
    quantity: Optional[int] = None
    status: Optional[str] = None
    inventory_id: Optional[int] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None

class ServiceItemRead(ServiceItemBase):
    id: int
    request_id: int
    inventory_id: Optional[int]
    status: ItemStatus
    delivery_date: Optional[datetime]

class ServiceRequestCreate(ServiceRequestBase):
    victim_id: int
    ngo_id: int
    urgency_level: str
    service_items: Optional[List[ServiceItemCreate]] = None

class ServiceRequestUpdate(SQLModel):
    status: Optional[str] = None
    staff_id: Optional[int] = None
    urgency_level: Optional[str] = None
    notes: Optional[str] = None
    service_items: Optional[List[ServiceItemUpsert]] = None

class ServiceRequestRead(ServiceRequestBase):
    id: int
    victim_id: int
    ngo_id: int
    urgency_level: UrgencyLevel
    status: RequestStatus
    request_date: datetime
    responded_by: Optional[int]
    response_date: Optional[datetime]
    completion_date: Optional[datetime]

class ServiceRequestDetail(ServiceRequestRead):
    service_items: List[ServiceItemRead] = []

class VictimNeedDetail(VictimNeedRead):
    service_requests: List[ServiceRequestRead] = []
    matching_ngos: List[NGORead] = []

# Ongoing services and their delivery log

class NGOServiceBase(SQLModel):
    service_type: str
    notes: Optional[str] = None

class NGOService(NGOServiceBase, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    victim_id: int = Field(foreign_key="victim.id", index=True)
    ngo_id: int = Field(foreign_key="ngo.id", index=True)
    status: ServiceStatus = ServiceStatus.PENDING
    start_date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )

class NGOServiceCreate(NGOServiceBase):
    victim_id: int
    ngo_id: int

class NGOServiceRead(NGOServiceBase):
    id: int
    victim_id: int
    ngo_id: int
    status: ServiceStatus
    start_date: datetime

class ServiceDeliveryLogBase(SQLModel):
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    feedback: Optional[str] = None
    effectiveness_rating: Optional[int] = None
    followup_needed: bool = False
    followup_date: Optional[datetime] = None
    notes: Optional[str] = None

class ServiceDeliveryLog(ServiceDeliveryLogBase, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    service_id: int = Field(foreign_key="ngoservice.id", index=True)
    staff_id: int = Field(foreign_key="ngostaff.id", index=True)
    delivery_date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )

class ServiceDeliveryLogCreate(ServiceDeliveryLogBase):
    service_id: int
    staff_id: Optional[int] = None  # falls back to the bearer token's staff
    delivery_date: Optional[datetime] = None

class ServiceDeliveryLogRead(ServiceDeliveryLogBase):
    id: int
    service_id: int
    staff_id: int
    delivery_date: datetime
