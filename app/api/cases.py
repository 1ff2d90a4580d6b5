from fastapi import APIRouter
from typing import List, Optional

from app.database import SessionDep
from app.core.cases import case_registry
from app.models.victim import EventCreate, EventRead, VictimCreate, VictimRead
from app.utils.geocoding import geocoding_service

event_router = APIRouter()
victim_router = APIRouter()

@event_router.post("", response_model=EventRead, status_code=201)
async def create_event(db: SessionDep, event_data: EventCreate):
    return await case_registry.create_event(db, event_data, geocoder=geocoding_service)

@event_router.get("", response_model=List[EventRead])
async def list_events(db: SessionDep):
    return await case_registry.list_events(db)

@event_router.get("/{event_id}", response_model=EventRead)
async def get_event(db: SessionDep, event_id: int):
    return await case_registry.get_event(db, event_id)

@victim_router.post("", response_model=VictimRead, status_code=201)
async def register_victim(db: SessionDep, victim_data: VictimCreate):
    return await case_registry.register_victim(db, victim_data)

@victim_router.get("", response_model=List[VictimRead])
async def list_victims(db: SessionDep, event_id: Optional[int] = None):
    return await case_registry.list_victims(db, event_id=event_id)

@victim_router.get("/{victim_id}", response_model=VictimRead)
async def get_victim(db: SessionDep, victim_id: int):
    return await case_registry.get_victim(db, victim_id)
