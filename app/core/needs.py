import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import case, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select, desc

from app.config import settings
from app.core.errors import ConflictError, NotFoundError, ValidationError, parse_choice
from app.core.matching import NeedMatcher, ngo_matches_need, substring_match
from app.core.transactions import transactional
from app.models.ngo import NGO
from app.models.service import ServiceRequest
from app.models.victim import NeedStatus, UrgencyLevel, Victim, VictimNeed, VictimNeedUpdate

logger = logging.getLogger(__name__)

URGENCY_ORDER = case(
    (VictimNeed.urgency_level == UrgencyLevel.HIGH, 0),
    (VictimNeed.urgency_level == UrgencyLevel.MEDIUM, 1),
    else_=2
)

class NeedRegistry:
    """Victims' identified needs and their lifecycle to resolution"""

    def __init__(self, matcher: NeedMatcher = substring_match):
        self.matcher = matcher

    @transactional
    async def get(self, db: AsyncSession, need_id: int) -> VictimNeed:
        need = await db.get(VictimNeed, need_id)
        if need is None:
            raise NotFoundError("Victim need not found", need_id=need_id)
        return need

    @transactional
    async def list_needs(
        self,
        db: AsyncSession,
        victim_id: Optional[int] = None,
        need_type: Optional[str] = None,
        urgency_level: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> List[VictimNeed]:
        """Needs matching the filters, most urgent first, newest within a level"""
        query = select(VictimNeed)

        if victim_id is not None:
            query = query.where(VictimNeed.victim_id == victim_id)
        if need_type:
            query = query.where(
                func.lower(VictimNeed.need_type).contains(need_type.strip().lower(), autoescape=True)
            )
        if urgency_level:
            query = query.where(VictimNeed.urgency_level == parse_choice(UrgencyLevel, urgency_level, "urgency_level"))
        if status:
            query = query.where(VictimNeed.status == parse_choice(NeedStatus, status, "status"))
        if start_date is not None:
            query = query.where(VictimNeed.date_identified >= start_date)
        if end_date is not None:
            query = query.where(VictimNeed.date_identified <= end_date)

        result = await db.execute(
            query.order_by(URGENCY_ORDER, desc(VictimNeed.date_identified), desc(VictimNeed.id))
        )
        return list(result.scalars().all())

    def _new_need(self, victim_id: int, need_type: str, urgency_level, notes: Optional[str]) -> VictimNeed:
        if not need_type or not need_type.strip():
            raise ValidationError("need_type is required")

        return VictimNeed(
            victim_id=victim_id,
            need_type=need_type.strip(),
            urgency_level=parse_choice(UrgencyLevel, urgency_level, "urgency_level"),
            status=NeedStatus.PENDING,
            notes=notes
        )

    @transactional
    async def identify(
        self,
        db: AsyncSession,
        victim_id: int,
        need_type: str,
        urgency_level: str,
        notes: Optional[str] = None
    ) -> VictimNeed:
        need = self._new_need(victim_id, need_type, urgency_level, notes)

        if await db.get(Victim, victim_id) is None:
            raise NotFoundError("Victim not found", victim_id=victim_id)

        db.add(need)
        await db.commit()

        logger.info(f"Need {need.id} ({need.need_type}, {need.urgency_level.value}) identified for victim {victim_id}")
        return need

    @transactional
    async def update(self, db: AsyncSession, need_id: int, data: VictimNeedUpdate) -> VictimNeed:
        """
        Partial update. date_addressed only ever accompanies the addressed
        status: it is stamped on entry and cleared if the need is reopened.
        """
        need = await self.get(db, need_id)
        changes = data.model_dump(exclude_unset=True)

        new_status = need.status
        if changes.get("status") is not None:
            new_status = parse_choice(NeedStatus, changes["status"], "status")

        new_urgency = need.urgency_level
        if changes.get("urgency_level") is not None:
            new_urgency = parse_choice(UrgencyLevel, changes["urgency_level"], "urgency_level")

        if changes.get("date_addressed") is not None and new_status != NeedStatus.ADDRESSED:
            raise ValidationError("date_addressed can only be set on an addressed need")

        if "need_type" in changes and not (changes["need_type"] or "").strip():
            raise ValidationError("need_type cannot be empty")

        if changes.get("need_type"):
            need.need_type = changes["need_type"].strip()
        if "notes" in changes:
            need.notes = changes["notes"]
        need.urgency_level = new_urgency

        if new_status == NeedStatus.ADDRESSED:
            if changes.get("date_addressed") is not None:
                need.date_addressed = changes["date_addressed"]
            elif need.date_addressed is None:
                need.date_addressed = datetime.now(timezone.utc)
        else:
            need.date_addressed = None
        need.status = new_status

        db.add(need)
        await db.commit()
        return need

    @transactional
    async def resolve(self, db: AsyncSession, need_id: int) -> VictimNeed:
        """Mark a need addressed; resolving an addressed need changes nothing"""
        need = await self.get(db, need_id)

        if need.status == NeedStatus.ADDRESSED and need.date_addressed is not None:
            return need

        need.status = NeedStatus.ADDRESSED
        if need.date_addressed is None:
            need.date_addressed = datetime.now(timezone.utc)

        db.add(need)
        await db.commit()

        logger.info(f"Need {need_id} resolved")
        return need

    @transactional
    async def find_matching_ngos(self, db: AsyncSession, need: VictimNeed) -> List[NGO]:
        """
        Active NGOs whose focus area or support type matches the need type.
        A heuristic shortlist capped at NEED_MATCH_LIMIT, not a capability check.
        """
        result = await db.execute(select(NGO).where(NGO.is_active == True).order_by(NGO.id))

        matches: List[NGO] = []
        for ngo in result.scalars():
            if ngo_matches_need(ngo, need.need_type, self.matcher):
                matches.append(ngo)
                if len(matches) >= settings.NEED_MATCH_LIMIT:
                    break

        return matches

    @transactional
    async def related_requests(self, db: AsyncSession, need: VictimNeed) -> List[ServiceRequest]:
        """The victim's service requests whose type mentions this need type"""
        result = await db.execute(
            select(ServiceRequest)
            .where(
                ServiceRequest.victim_id == need.victim_id,
                func.lower(ServiceRequest.request_type).contains(need.need_type.lower(), autoescape=True)
            )
            .order_by(desc(ServiceRequest.request_date), desc(ServiceRequest.id))
        )
        return list(result.scalars().all())

    @transactional
    async def delete(self, db: AsyncSession, need_id: int) -> None:
        need = await self.get(db, need_id)

        related = await self.related_requests(db, need)
        if related:
            raise ConflictError(
                "Cannot delete need with related service requests",
                related_requests=len(related)
            )

        await db.delete(need)
        await db.commit()

    # Hooks used by the service request workflow. They only flush, the
    # workflow decides when its transaction commits.

    async def ensure_need_for_request(
        self,
        db: AsyncSession,
        victim_id: int,
        request_type: str,
        urgency_level: UrgencyLevel,
        ngo_name: str
    ) -> Optional[VictimNeed]:
        """Create a pending need for the request unless an open one exists"""
        result = await db.execute(
            select(VictimNeed).where(
                VictimNeed.victim_id == victim_id,
                func.lower(VictimNeed.need_type) == request_type.strip().lower(),
                VictimNeed.status != NeedStatus.ADDRESSED
            )
        )
        if result.scalars().first() is not None:
            return None

        need = self._new_need(victim_id, request_type, urgency_level, f"Service requested from {ngo_name}")
        db.add(need)
        await db.flush()
        return need

    async def resolve_for_request(
        self,
        db: AsyncSession,
        victim_id: int,
        request_type: str,
        addressed_at: datetime
    ) -> int:
        """Address every open need of the victim with this type; returns the count"""
        result = await db.execute(
            update(VictimNeed)
            .where(
                VictimNeed.victim_id == victim_id,
                func.lower(VictimNeed.need_type) == request_type.strip().lower(),
                VictimNeed.status != NeedStatus.ADDRESSED
            )
            .values(status=NeedStatus.ADDRESSED, date_addressed=addressed_at)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

need_registry = NeedRegistry()
