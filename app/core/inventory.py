import logging
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import case, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select, desc

from app.core.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from app.core.transactions import transactional
from app.models.ngo import NGO, ResourceInventoryCreate, ResourceInventoryItem, ResourceInventoryUpdate
from app.models.service import ServiceItem

logger = logging.getLogger(__name__)

def _type_contains(resource_type: str):
    return func.lower(ResourceInventoryItem.resource_type).contains(
        resource_type.strip().lower(), autoescape=True
    )

class ResourceInventoryLedger:
    """Per-NGO resource stock: availability queries and consumption"""

    @transactional
    async def get(self, db: AsyncSession, inventory_id: int) -> ResourceInventoryItem:
        item = await db.get(ResourceInventoryItem, inventory_id)
        if item is None:
            raise NotFoundError("Inventory item not found", inventory_id=inventory_id)
        return item

    @transactional
    async def list_available(
        self,
        db: AsyncSession,
        ngo_id: Optional[int] = None,
        resource_type: Optional[str] = None,
        not_expired_as_of: Optional[date] = None,
        ngo_ids: Optional[Iterable[int]] = None
    ) -> List[ResourceInventoryItem]:
        """
        Items that can actually be handed out.

        The availability flag and a positive quantity are both required;
        quantity is what consumption checks, the flag only narrows further.
        """
        query = select(ResourceInventoryItem).where(
            ResourceInventoryItem.is_available == True,
            ResourceInventoryItem.quantity > 0
        )

        if ngo_id is not None:
            query = query.where(ResourceInventoryItem.ngo_id == ngo_id)

        if ngo_ids is not None:
            ngo_ids = list(ngo_ids)
            if not ngo_ids:
                return []
            query = query.where(ResourceInventoryItem.ngo_id.in_(ngo_ids))

        if resource_type:
            query = query.where(_type_contains(resource_type))

        if not_expired_as_of is not None:
            query = query.where(or_(
                ResourceInventoryItem.expiry_date.is_(None),
                ResourceInventoryItem.expiry_date >= not_expired_as_of
            ))

        result = await db.execute(query.order_by(ResourceInventoryItem.ngo_id, ResourceInventoryItem.id))
        return list(result.scalars().all())

    @transactional
    async def list_items(
        self,
        db: AsyncSession,
        ngo_id: Optional[int] = None,
        resource_type: Optional[str] = None,
        is_available: Optional[bool] = None,
        expiry_before: Optional[date] = None,
        expiry_after: Optional[date] = None
    ) -> List[ResourceInventoryItem]:
        query = select(ResourceInventoryItem)

        if ngo_id is not None:
            query = query.where(ResourceInventoryItem.ngo_id == ngo_id)
        if resource_type:
            query = query.where(_type_contains(resource_type))
        if is_available is not None:
            query = query.where(ResourceInventoryItem.is_available == is_available)
        if expiry_before is not None:
            query = query.where(ResourceInventoryItem.expiry_date < expiry_before)
        if expiry_after is not None:
            query = query.where(ResourceInventoryItem.expiry_date > expiry_after)

        result = await db.execute(
            query.order_by(desc(ResourceInventoryItem.last_updated), desc(ResourceInventoryItem.id))
        )
        return list(result.scalars().all())

    @transactional
    async def referencing_items(self, db: AsyncSession, inventory_id: int) -> List[ServiceItem]:
        result = await db.execute(
            select(ServiceItem)
            .where(ServiceItem.inventory_id == inventory_id)
            .order_by(ServiceItem.id)
        )
        return list(result.scalars().all())

    @transactional
    async def create(self, db: AsyncSession, data: ResourceInventoryCreate) -> ResourceInventoryItem:
        if await db.get(NGO, data.ngo_id) is None:
            raise ValidationError("ngo_id does not reference an existing NGO", ngo_id=data.ngo_id)

        if data.quantity is None or data.quantity < 0:
            raise ValidationError("quantity must be zero or more", quantity=data.quantity)

        if not data.resource_type or not data.resource_name:
            raise ValidationError("resource_type and resource_name are required")

        item = ResourceInventoryItem(**data.model_dump(), is_available=True)
        db.add(item)
        await db.commit()

        logger.info(f"Inventory item {item.id} created for NGO {item.ngo_id}: {item.quantity} x {item.resource_name}")
        return item

    @transactional
    async def update(
        self,
        db: AsyncSession,
        inventory_id: int,
        data: ResourceInventoryUpdate
    ) -> ResourceInventoryItem:
        item = await self.get(db, inventory_id)
        changes = data.model_dump(exclude_unset=True)

        if "quantity" in changes and (changes["quantity"] is None or changes["quantity"] < 0):
            raise ValidationError("quantity must be zero or more", quantity=changes["quantity"])

        for field in ("resource_type", "resource_name", "is_available"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null")

        for field, value in changes.items():
            setattr(item, field, value)
        item.last_updated = datetime.now(timezone.utc)

        db.add(item)
        await db.commit()
        return item

    @transactional
    async def consume(self, db: AsyncSession, inventory_id: int, amount: int) -> ResourceInventoryItem:
        """
        Take `amount` units out of stock.

        The decrement is a single conditional UPDATE, so two callers racing
        for the same row serialize on the row lock and the loser sees the
        reduced quantity. Called from another service method, the caller's
        transaction decides whether the decrement sticks.
        """
        if amount is None or amount < 1:
            raise ValidationError("amount must be at least 1", amount=amount)

        remaining = ResourceInventoryItem.quantity - amount
        result = await db.execute(
            update(ResourceInventoryItem)
            .where(
                ResourceInventoryItem.id == inventory_id,
                ResourceInventoryItem.quantity >= amount
            )
            .values(
                quantity=remaining,
                is_available=case((remaining <= 0, False), else_=ResourceInventoryItem.is_available),
                last_updated=datetime.now(timezone.utc)
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            item = await db.get(ResourceInventoryItem, inventory_id, populate_existing=True)
            if item is None:
                raise NotFoundError("Inventory item not found", inventory_id=inventory_id)
            raise InsufficientStockError(
                f"Only {item.quantity} {item.unit or 'units'} of {item.resource_name} left",
                inventory_id=inventory_id,
                requested=amount,
                available=item.quantity
            )

        item = await db.get(ResourceInventoryItem, inventory_id, populate_existing=True)

        logger.info(f"Consumed {amount} from inventory item {inventory_id}, {item.quantity} left")
        return item

    @transactional
    async def delete(self, db: AsyncSession, inventory_id: int) -> None:
        item = await self.get(db, inventory_id)

        blocking = await self.referencing_items(db, inventory_id)
        if blocking:
            raise ConflictError(
                "Cannot delete inventory item that is associated with service items",
                service_item_ids=[service_item.id for service_item in blocking]
            )

        await db.delete(item)
        await db.commit()
        logger.info(f"Inventory item {inventory_id} deleted")

inventory_ledger = ResourceInventoryLedger()
