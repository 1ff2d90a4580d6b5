import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete as sql_delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select, desc

from app.core.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
    parse_choice,
)
from app.core.inventory import ResourceInventoryLedger, inventory_ledger
from app.core.needs import NeedRegistry, need_registry
from app.core.transactions import transactional
from app.models.ngo import NGO, NGOStaff, ResourceInventoryItem
from app.models.service import (
    ItemStatus,
    RequestStatus,
    ServiceItem,
    ServiceItemCreate,
    ServiceItemUpsert,
    ServiceRequest,
)
from app.models.victim import UrgencyLevel, Victim

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[RequestStatus, frozenset] = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.DENIED}),
    RequestStatus.APPROVED: frozenset({RequestStatus.IN_PROGRESS, RequestStatus.DENIED}),
    RequestStatus.IN_PROGRESS: frozenset({RequestStatus.COMPLETED, RequestStatus.DENIED}),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.DENIED: frozenset(),
}

TERMINAL_STATUSES = frozenset({RequestStatus.COMPLETED, RequestStatus.DENIED})

def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]

class ServiceRequestWorkflow:
    """
    Lifecycle of a request for help: creation, staff response, itemization
    against inventory, completion or denial, and the knock-on effect on the
    victim's needs.

    Each public operation is one transaction. The need bookkeeping is
    best-effort and runs in a savepoint so it can fail on its own.
    """

    def __init__(
        self,
        inventory: ResourceInventoryLedger = inventory_ledger,
        needs: NeedRegistry = need_registry
    ):
        self.inventory = inventory
        self.needs = needs

    @transactional
    async def get(self, db: AsyncSession, request_id: int, for_update: bool = False) -> ServiceRequest:
        # for_update locks the row until the transaction ends and rereads it
        options = {"with_for_update": True, "populate_existing": True} if for_update else {}
        request = await db.get(ServiceRequest, request_id, **options)
        if request is None:
            raise NotFoundError("Service request not found", request_id=request_id)
        return request

    @transactional
    async def get_items(self, db: AsyncSession, request_id: int) -> List[ServiceItem]:
        result = await db.execute(
            select(ServiceItem)
            .where(ServiceItem.request_id == request_id)
            .order_by(ServiceItem.id)
        )
        return list(result.scalars().all())

    @transactional
    async def get_detail(self, db: AsyncSession, request_id: int) -> Tuple[ServiceRequest, List[ServiceItem]]:
        request = await self.get(db, request_id)
        return request, await self.get_items(db, request_id)

    @transactional
    async def list_requests(
        self,
        db: AsyncSession,
        ngo_id: Optional[int] = None,
        victim_id: Optional[int] = None,
        status: Optional[str] = None,
        request_type: Optional[str] = None,
        urgency_level: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        staff_id: Optional[int] = None
    ) -> List[ServiceRequest]:
        query = select(ServiceRequest)

        if ngo_id is not None:
            query = query.where(ServiceRequest.ngo_id == ngo_id)
        if victim_id is not None:
            query = query.where(ServiceRequest.victim_id == victim_id)
        if status:
            query = query.where(ServiceRequest.status == parse_choice(RequestStatus, status, "status"))
        if request_type:
            query = query.where(
                func.lower(ServiceRequest.request_type).contains(request_type.strip().lower(), autoescape=True)
            )
        if urgency_level:
            query = query.where(
                ServiceRequest.urgency_level == parse_choice(UrgencyLevel, urgency_level, "urgency_level")
            )
        if start_date is not None:
            query = query.where(ServiceRequest.request_date >= start_date)
        if end_date is not None:
            query = query.where(ServiceRequest.request_date <= end_date)
        if staff_id is not None:
            query = query.where(ServiceRequest.responded_by == staff_id)

        result = await db.execute(query.order_by(desc(ServiceRequest.request_date), desc(ServiceRequest.id)))
        return list(result.scalars().all())

    @transactional
    async def create(
        self,
        db: AsyncSession,
        victim_id: int,
        ngo_id: int,
        request_type: str,
        urgency_level: str,
        notes: Optional[str] = None,
        items: Optional[Iterable[ServiceItemCreate]] = None
    ) -> Tuple[ServiceRequest, List[ServiceItem]]:
        urgency = parse_choice(UrgencyLevel, urgency_level, "urgency_level")
        if not request_type or not request_type.strip():
            raise ValidationError("request_type is required")

        items = list(items or [])
        for item in items:
            self._check_item_fields(item.service_type, item.quantity)

        if await db.get(Victim, victim_id) is None:
            raise NotFoundError("Victim not found", victim_id=victim_id)

        ngo = await db.get(NGO, ngo_id)
        if ngo is None:
            raise NotFoundError("NGO not found", ngo_id=ngo_id)

        for item in items:
            if item.inventory_id is not None:
                await self._check_inventory(db, ngo_id, item.inventory_id)

        request = ServiceRequest(
            victim_id=victim_id,
            ngo_id=ngo_id,
            request_type=request_type.strip(),
            urgency_level=urgency,
            status=RequestStatus.PENDING,
            notes=notes
        )
        db.add(request)
        await db.flush()

        created = [
            ServiceItem(
                request_id=request.id,
                service_type=item.service_type,
                quantity=item.quantity,
                inventory_id=item.inventory_id,
                status=ItemStatus.PENDING,
                notes=item.notes
            )
            for item in items
        ]
        db.add_all(created)
        await db.flush()

        await self._best_effort(
            db,
            f"creating need record for request {request.id}",
            lambda: self.needs.ensure_need_for_request(
                db, victim_id, request.request_type, urgency, ngo.name
            )
        )

        await db.commit()

        logger.info(
            f"Service request {request.id} created: victim {victim_id} -> NGO {ngo_id} "
            f"({request.request_type}, {urgency.value}, {len(created)} item(s))"
        )
        return request, created

    @transactional
    async def update_status(
        self,
        db: AsyncSession,
        request_id: int,
        new_status: Optional[str] = None,
        staff_id: Optional[int] = None,
        service_items: Optional[Iterable[ServiceItemUpsert]] = None,
        urgency_level: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Tuple[ServiceRequest, List[ServiceItem]]:
        """
        Move a request along its state machine and apply item changes.

        new_status may be None to only touch items, urgency or notes.
        Completed and denied requests accept no changes at all.
        """
        request = await self.get(db, request_id, for_update=True)
        current = request.status

        target = parse_choice(RequestStatus, new_status, "status") if new_status is not None else None
        changing = target is not None and target != current

        if current in TERMINAL_STATUSES:
            raise InvalidTransitionError(
                f"Service request is {current.value} and can no longer change",
                current_status=current.value,
                requested_status=target.value if target else None
            )

        if changing and not can_transition(current, target):
            raise InvalidTransitionError(
                f"Cannot move service request from {current.value} to {target.value}",
                current_status=current.value,
                requested_status=target.value,
                allowed=sorted(status.value for status in ALLOWED_TRANSITIONS[current])
            )

        urgency = parse_choice(UrgencyLevel, urgency_level, "urgency_level") if urgency_level is not None else None

        staff = None
        if staff_id is not None:
            staff = await self._responding_staff(db, staff_id, request.ngo_id)

        now = datetime.now(timezone.utc)

        items = await self.get_items(db, request_id)
        for change in service_items or []:
            await self._apply_item_change(db, request, items, change, now)

        if staff is not None:
            request.responded_by = staff.id
        if urgency is not None:
            request.urgency_level = urgency
        if notes is not None:
            request.notes = notes

        if changing:
            request.status = target

            if current == RequestStatus.PENDING and request.response_date is None:
                request.response_date = now

            if target == RequestStatus.COMPLETED:
                request.completion_date = now
                for item in items:
                    if item.status == ItemStatus.PENDING:
                        await self._deliver_item(db, item, now)
            elif target == RequestStatus.DENIED:
                for item in items:
                    if item.status == ItemStatus.PENDING:
                        item.status = ItemStatus.CANCELLED

        db.add(request)
        db.add_all(items)
        await db.flush()

        if changing and target == RequestStatus.COMPLETED:
            await self._best_effort(
                db,
                f"updating victim need status for request {request_id}",
                lambda: self.needs.resolve_for_request(
                    db, request.victim_id, request.request_type, now
                )
            )

        await db.commit()

        if changing:
            logger.info(f"Service request {request_id}: {current.value} -> {target.value}")
        return request, items

    @transactional
    async def delete(self, db: AsyncSession, request_id: int) -> None:
        request = await self.get(db, request_id, for_update=True)

        if request.status == RequestStatus.COMPLETED:
            raise ConflictError("Cannot delete a completed service request", request_id=request_id)

        await db.execute(sql_delete(ServiceItem).where(ServiceItem.request_id == request_id))
        await db.delete(request)
        await db.commit()

        logger.info(f"Service request {request_id} deleted")

    # Helpers

    async def _best_effort(
        self,
        db: AsyncSession,
        description: str,
        operation: Callable[[], Awaitable[Any]]
    ) -> Any:
        """
        Run a secondary write inside a savepoint. A failure rolls back only
        the savepoint and is logged; the caller's transaction carries on.
        """
        try:
            async with db.begin_nested():
                return await operation()
        except Exception:
            logger.exception(f"Non-fatal error {description}")
            return None

    async def _responding_staff(self, db: AsyncSession, staff_id: int, ngo_id: int) -> NGOStaff:
        staff = await db.get(NGOStaff, staff_id)
        if staff is None:
            raise NotFoundError("Staff member not found", staff_id=staff_id)

        if staff.ngo_id != ngo_id:
            raise ConflictError(
                "Staff member must belong to the same NGO as the service request",
                staff_id=staff_id,
                staff_ngo_id=staff.ngo_id,
                request_ngo_id=ngo_id
            )

        if not staff.is_active:
            raise ConflictError("Staff member is inactive", staff_id=staff_id)

        return staff

    async def _check_inventory(self, db: AsyncSession, ngo_id: int, inventory_id: int) -> ResourceInventoryItem:
        inventory_item = await self.inventory.get(db, inventory_id)
        if inventory_item.ngo_id != ngo_id:
            raise ConflictError(
                "Inventory item belongs to a different NGO",
                inventory_id=inventory_id,
                inventory_ngo_id=inventory_item.ngo_id,
                request_ngo_id=ngo_id
            )
        return inventory_item

    def _check_item_fields(self, service_type: Optional[str], quantity: Optional[int]) -> None:
        if not service_type or not service_type.strip():
            raise ValidationError("service_type is required for every service item")
        if quantity is None or quantity < 1:
            raise ValidationError("service item quantity must be at least 1", quantity=quantity)

    async def _deliver_item(self, db: AsyncSession, item: ServiceItem, when: datetime) -> None:
        if item.inventory_id is not None:
            await self.inventory.consume(db, item.inventory_id, item.quantity)
        item.status = ItemStatus.DELIVERED
        if item.delivery_date is None:
            item.delivery_date = when

    async def _apply_item_change(
        self,
        db: AsyncSession,
        request: ServiceRequest,
        items: List[ServiceItem],
        change: ServiceItemUpsert,
        now: datetime
    ) -> None:
        item_status = parse_choice(ItemStatus, change.status, "status") if change.status is not None else None

        if change.service_item_id is None:
            self._check_item_fields(change.service_type, 1 if change.quantity is None else change.quantity)
            if change.inventory_id is not None:
                await self._check_inventory(db, request.ngo_id, change.inventory_id)

            item = ServiceItem(
                request_id=request.id,
                service_type=change.service_type,
                quantity=1 if change.quantity is None else change.quantity,
                inventory_id=change.inventory_id,
                status=ItemStatus.PENDING,
                delivery_date=change.delivery_date,
                notes=change.notes
            )
            db.add(item)
            await db.flush()
            items.append(item)
        else:
            item = next((existing for existing in items if existing.id == change.service_item_id), None)
            if item is None:
                raise NotFoundError(
                    f"Service item with ID {change.service_item_id} not found",
                    service_item_id=change.service_item_id
                )

            delivered = item.status == ItemStatus.DELIVERED
            if delivered and (change.quantity is not None or change.inventory_id is not None):
                raise ConflictError(
                    "Quantity and inventory of a delivered item are final",
                    service_item_id=item.id
                )

            if change.service_type is not None or change.quantity is not None:
                self._check_item_fields(
                    change.service_type if change.service_type is not None else item.service_type,
                    change.quantity if change.quantity is not None else item.quantity
                )

            if change.inventory_id is not None and change.inventory_id != item.inventory_id:
                await self._check_inventory(db, request.ngo_id, change.inventory_id)
                item.inventory_id = change.inventory_id

            if change.service_type is not None:
                item.service_type = change.service_type
            if change.quantity is not None:
                item.quantity = change.quantity
            if change.delivery_date is not None:
                item.delivery_date = change.delivery_date
            if change.notes is not None:
                item.notes = change.notes

        if item_status is not None and item_status != item.status:
            if item.status != ItemStatus.PENDING:
                raise ConflictError(
                    f"Service item {item.id} is already {item.status.value}",
                    service_item_id=item.id
                )
            if item_status == ItemStatus.DELIVERED:
                await self._deliver_item(db, item, now)
            else:
                item.status = item_status

service_request_workflow = ServiceRequestWorkflow()
