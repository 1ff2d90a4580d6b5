from sqlmodel import SQLModel, Field, Column, DateTime
from datetime import datetime, timezone
from typing import Optional
from enum import Enum

class UrgencyLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

class NeedStatus(str, Enum):
    PENDING = "pending"
    ONGOING = "ongoing"
    ADDRESSED = "addressed"

# Events and victims are owned by the wider case-management app; only the
# columns the allocation core reads are modelled here.

class EventBase(SQLModel):
    description: str
    location: Optional[str] = None  # free-text address, e.g. "Sylhet, Bangladesh"
    date: Optional[datetime] = None

class Event(EventBase, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    latitude: Optional[float] = None  # null when geocoding failed or was skipped
    longitude: Optional[float] = None

class EventCreate(EventBase):
    latitude: Optional[float] = None
    longitude: Optional[float] = None

class EventRead(EventBase):
    id: int
    latitude: Optional[float]
    longitude: Optional[float]

class VictimBase(SQLModel):
    name: str
    gender: Optional[str] = None
    status: Optional[str] = None
    event_id: Optional[int] = Field(default=None, foreign_key="event.id")

class Victim(VictimBase, table=True):

    # Birth certificate number, assigned by the registrar rather than the database
    id: int = Field(primary_key=True)

class VictimCreate(VictimBase):
    id: int

class VictimRead(VictimBase):
    id: int

# Needs

class VictimNeedBase(SQLModel):
    need_type: str
    notes: Optional[str] = None

class VictimNeed(VictimNeedBase, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    victim_id: int = Field(foreign_key="victim.id", index=True)
    urgency_level: UrgencyLevel
    status: NeedStatus = NeedStatus.PENDING
    date_identified: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )
    date_addressed: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )

class VictimNeedCreate(VictimNeedBase):
    victim_id: int
    urgency_level: str

class VictimNeedRead(VictimNeedBase):
    id: int
    victim_id: int
    urgency_level: UrgencyLevel
    status: NeedStatus
    date_identified: datetime
    date_addressed: Optional[datetime]

class VictimNeedUpdate(SQLModel):
    need_type: Optional[str] = None
    urgency_level: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    date_addressed: Optional[datetime] = None
