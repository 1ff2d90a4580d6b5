import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select, desc

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.geofencing import validate_coordinates
from app.core.transactions import transactional
from app.models.victim import Event, EventCreate, Victim, VictimCreate

logger = logging.getLogger(__name__)

class CaseRegistry:
    """Disaster events and the victims registered against them"""

    @transactional
    async def create_event(self, db: AsyncSession, data: EventCreate, geocoder=None) -> Event:
        """
        Store an event. Explicit coordinates win; otherwise the free-text
        location is geocoded once through `geocoder` and the result (or nothing) is saved.
        """
        if not data.description or not data.description.strip():
            raise ValidationError("description is required")

        if (data.latitude is None) != (data.longitude is None):
            raise ValidationError("latitude and longitude must be given together")

        event = Event(**data.model_dump(exclude={"latitude", "longitude"}))

        if data.latitude is not None:
            point = validate_coordinates(data.latitude, data.longitude)
        elif geocoder is not None:
            point = await geocoder.geocode(data.location)
        else:
            point = None

        if point is not None:
            event.latitude = point.latitude
            event.longitude = point.longitude
        else:
            logger.info(f"Event stored without coordinates (location={data.location!r})")

        db.add(event)
        await db.commit()

        logger.info(f"Event {event.id} created")
        return event

    @transactional
    async def get_event(self, db: AsyncSession, event_id: int) -> Event:
        event = await db.get(Event, event_id)
        if event is None:
            raise NotFoundError("Event not found", event_id=event_id)
        return event

    @transactional
    async def list_events(self, db: AsyncSession) -> List[Event]:
        result = await db.execute(select(Event).order_by(desc(Event.id)))
        return list(result.scalars().all())

    @transactional
    async def register_victim(self, db: AsyncSession, data: VictimCreate) -> Victim:
        if not data.name or not data.name.strip():
            raise ValidationError("name is required")

        if await db.get(Victim, data.id) is not None:
            raise ConflictError("Victim already registered", victim_id=data.id)

        if data.event_id is not None:
            await self.get_event(db, data.event_id)

        victim = Victim(**data.model_dump())
        db.add(victim)
        await db.commit()

        logger.info(f"Victim {victim.id} registered (event {victim.event_id})")
        return victim

    @transactional
    async def get_victim(self, db: AsyncSession, victim_id: int) -> Victim:
        victim = await db.get(Victim, victim_id)
        if victim is None:
            raise NotFoundError("Victim not found", victim_id=victim_id)
        return victim

    @transactional
    async def list_victims(self, db: AsyncSession, event_id: Optional[int] = None) -> List[Victim]:
        query = select(Victim)
        if event_id is not None:
            query = query.where(Victim.event_id == event_id)

        result = await db.execute(query.order_by(Victim.id))
        return list(result.scalars().all())

case_registry = CaseRegistry()
