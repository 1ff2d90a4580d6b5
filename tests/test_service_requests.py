import asyncio

import pytest

from app.core.errors import (
    ConflictError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.core.needs import need_registry
from app.core.service_requests import can_transition, service_request_workflow
from app.models.ngo import ResourceInventoryItem
from app.models.service import (
    ItemStatus,
    RequestStatus,
    ServiceItem,
    ServiceItemCreate,
    ServiceItemUpsert,
    ServiceRequest,
)
from app.models.victim import NeedStatus, UrgencyLevel, VictimNeed
from sqlmodel import select

from conftest import capture_orm_sql, make_inventory, make_ngo, make_staff, make_victim

async def _advance(db, request_id, *statuses, staff_id=None):
    request = None
    for status in statuses:
        request, _ = await service_request_workflow.update_status(db, request_id, status, staff_id=staff_id)
    return request

def test_transition_table():
    assert can_transition(RequestStatus.PENDING, RequestStatus.APPROVED)
    assert can_transition(RequestStatus.IN_PROGRESS, RequestStatus.DENIED)
    assert not can_transition(RequestStatus.PENDING, RequestStatus.COMPLETED)
    assert not can_transition(RequestStatus.COMPLETED, RequestStatus.PENDING)
    assert not can_transition(RequestStatus.DENIED, RequestStatus.APPROVED)

async def test_staff_from_another_ngo_cannot_respond(db, seed):
    await seed(make_victim(1001), make_ngo(id=5, name="Five"), make_ngo(id=9, name="Nine"))
    await seed(make_staff(9, id=7))

    request, items = await service_request_workflow.create(db, 1001, 5, "Medical", "high")
    request_id = request.id
    assert request.status == RequestStatus.PENDING
    assert request.response_date is None
    assert items == []

    with pytest.raises(ConflictError):
        await service_request_workflow.update_status(db, request_id, "approved", staff_id=7)

    unchanged = await db.get(ServiceRequest, request_id, populate_existing=True)
    assert unchanged.status == RequestStatus.PENDING

async def test_staff_of_the_same_ngo_approves(db, seed):
    await seed(make_victim(1001), make_ngo(id=5))
    await seed(make_staff(5, id=7))

    request, _ = await service_request_workflow.create(db, 1001, 5, "Medical", "high")
    request, _ = await service_request_workflow.update_status(db, request.id, "approved", staff_id=7)

    assert request.status == RequestStatus.APPROVED
    assert request.responded_by == 7
    assert request.response_date is not None
    assert request.completion_date is None

async def test_inactive_and_unknown_staff_are_rejected(db, seed):
    await seed(make_victim(1), make_ngo(id=5))
    await seed(make_staff(5, id=7, is_active=False))
    request, _ = await service_request_workflow.create(db, 1, 5, "Food", "low")
    request_id = request.id

    with pytest.raises(ConflictError):
        await service_request_workflow.update_status(db, request_id, "approved", staff_id=7)
    with pytest.raises(NotFoundError):
        await service_request_workflow.update_status(db, request_id, "approved", staff_id=99)

async def test_create_validates_references(db, seed):
    await seed(make_victim(1), make_ngo(id=5), make_ngo(id=6))
    [foreign_stock] = await seed(make_inventory(6, "Food", 5))

    with pytest.raises(NotFoundError):
        await service_request_workflow.create(db, 2, 5, "Food", "low")
    with pytest.raises(NotFoundError):
        await service_request_workflow.create(db, 1, 50, "Food", "low")
    with pytest.raises(ValidationError):
        await service_request_workflow.create(db, 1, 5, "Food", "urgent")
    with pytest.raises(ConflictError):
        await service_request_workflow.create(
            db, 1, 5, "Food", "low",
            items=[ServiceItemCreate(service_type="Rice", inventory_id=foreign_stock)]
        )

    result = await db.execute(select(ServiceRequest))
    assert result.scalars().all() == []

async def test_creating_a_request_opens_a_pending_need_once(db, seed):
    await seed(make_victim(1), make_ngo(id=5, name="Helping Hands"))

    await service_request_workflow.create(db, 1, 5, "Shelter", "high")
    await service_request_workflow.create(db, 1, 5, "shelter", "medium")

    result = await db.execute(select(VictimNeed).where(VictimNeed.victim_id == 1))
    needs = result.scalars().all()
    assert len(needs) == 1
    assert needs[0].status == NeedStatus.PENDING
    assert needs[0].notes == "Service requested from Helping Hands"

async def test_completion_addresses_matching_need(db, seed):
    await seed(make_victim(42), make_ngo(id=8))
    [need_id, other_id] = await seed(
        VictimNeed(victim_id=42, need_type="Shelter", urgency_level=UrgencyLevel.HIGH),
        VictimNeed(victim_id=42, need_type="Food", urgency_level=UrgencyLevel.LOW),
    )

    request, _ = await service_request_workflow.create(db, 42, 8, "Shelter", "high")
    request = await _advance(db, request.id, "approved", "in_progress", "completed")

    assert request.status == RequestStatus.COMPLETED
    assert request.completion_date is not None

    request = await db.get(ServiceRequest, request.id, populate_existing=True)
    need = await db.get(VictimNeed, need_id, populate_existing=True)
    assert need.status == NeedStatus.ADDRESSED
    assert need.date_addressed == request.completion_date

    other = await db.get(VictimNeed, other_id, populate_existing=True)
    assert other.status == NeedStatus.PENDING

async def test_illegal_and_terminal_transitions_fail(db, seed):
    await seed(make_victim(1), make_ngo(id=5))
    request, _ = await service_request_workflow.create(db, 1, 5, "Food", "low")
    request_id = request.id

    with pytest.raises(InvalidTransitionError) as excinfo:
        await service_request_workflow.update_status(db, request_id, "completed")
    assert excinfo.value.details["allowed"] == ["approved", "denied"]

    await _advance(db, request_id, "approved", "in_progress", "completed")

    for status in ("pending", "denied", "completed"):
        with pytest.raises(InvalidTransitionError):
            await service_request_workflow.update_status(db, request_id, status)
    with pytest.raises(InvalidTransitionError):
        await service_request_workflow.update_status(db, request_id, notes="late note")

async def test_completion_consumes_item_stock(db, seed):
    await seed(make_victim(1), make_ngo(id=5))
    [stock_id] = await seed(make_inventory(5, "Food", 10))

    request, items = await service_request_workflow.create(
        db, 1, 5, "Food", "high",
        items=[
            ServiceItemCreate(service_type="Rice", quantity=4, inventory_id=stock_id),
            ServiceItemCreate(service_type="Advice"),
        ]
    )
    await _advance(db, request.id, "approved", "in_progress", "completed")

    stock = await db.get(ResourceInventoryItem, stock_id, populate_existing=True)
    assert stock.quantity == 6

    result = await db.execute(select(ServiceItem).where(ServiceItem.request_id == request.id))
    assert {item.status for item in result.scalars()} == {ItemStatus.DELIVERED}

async def test_delivering_more_than_stock_rolls_back_the_update(db, seed):
    await seed(make_victim(1), make_ngo(id=5))
    [stock_id] = await seed(make_inventory(5, "Food", 2))

    request, items = await service_request_workflow.create(
        db, 1, 5, "Food", "high",
        items=[ServiceItemCreate(service_type="Rice", quantity=3, inventory_id=stock_id)]
    )
    request_id, item_id = request.id, items[0].id
    await _advance(db, request_id, "approved", "in_progress")

    with pytest.raises(InsufficientStockError):
        await service_request_workflow.update_status(db, request_id, "completed")

    request = await db.get(ServiceRequest, request_id, populate_existing=True)
    assert request.status == RequestStatus.IN_PROGRESS
    item = await db.get(ServiceItem, item_id, populate_existing=True)
    assert item.status == ItemStatus.PENDING
    stock = await db.get(ResourceInventoryItem, stock_id, populate_existing=True)
    assert stock.quantity == 2

async def test_item_upserts_during_update(db, seed):
    await seed(make_victim(1), make_ngo(id=5))
    [stock_id] = await seed(make_inventory(5, "Water", 10))

    request, items = await service_request_workflow.create(
        db, 1, 5, "Water", "medium",
        items=[ServiceItemCreate(service_type="Bottles", quantity=2, inventory_id=stock_id)]
    )
    item_id = items[0].id

    request, items = await service_request_workflow.update_status(
        db, request.id, "approved",
        service_items=[
            ServiceItemUpsert(service_item_id=item_id, status="delivered"),
            ServiceItemUpsert(service_type="Purification tablets", quantity=1),
        ]
    )

    assert [item.status for item in items] == [ItemStatus.DELIVERED, ItemStatus.PENDING]
    assert items[0].delivery_date is not None
    stock = await db.get(ResourceInventoryItem, stock_id, populate_existing=True)
    assert stock.quantity == 8

    with pytest.raises(NotFoundError):
        await service_request_workflow.update_status(
            db, request.id, service_items=[ServiceItemUpsert(service_item_id=999, status="delivered")]
        )

async def test_denial_cancels_pending_items(db, seed):
    await seed(make_victim(1), make_ngo(id=5))
    [stock_id] = await seed(make_inventory(5, "Food", 5))

    request, _ = await service_request_workflow.create(
        db, 1, 5, "Food", "low",
        items=[ServiceItemCreate(service_type="Rice", quantity=2, inventory_id=stock_id)]
    )
    request, items = await service_request_workflow.update_status(db, request.id, "denied")

    assert request.status == RequestStatus.DENIED
    assert request.response_date is not None
    assert [item.status for item in items] == [ItemStatus.CANCELLED]
    stock = await db.get(ResourceInventoryItem, stock_id, populate_existing=True)
    assert stock.quantity == 5

async def test_completed_requests_cannot_be_deleted(db, seed):
    await seed(make_victim(1), make_ngo(id=5))
    request, items = await service_request_workflow.create(
        db, 1, 5, "Food", "low", items=[ServiceItemCreate(service_type="Rice")]
    )
    request_id, item_id = request.id, items[0].id
    await _advance(db, request_id, "approved", "in_progress", "completed")

    with pytest.raises(ConflictError):
        await service_request_workflow.delete(db, request_id)

    assert await db.get(ServiceRequest, request_id) is not None
    assert await db.get(ServiceItem, item_id) is not None

async def test_delete_removes_request_and_items(db, seed):
    await seed(make_victim(1), make_ngo(id=5))
    request, items = await service_request_workflow.create(
        db, 1, 5, "Food", "low", items=[ServiceItemCreate(service_type="Rice")]
    )
    request_id = request.id

    await service_request_workflow.delete(db, request_id)

    assert await db.get(ServiceRequest, request_id) is None
    result = await db.execute(select(ServiceItem).where(ServiceItem.request_id == request_id))
    assert result.scalars().all() == []

async def test_need_bookkeeping_failure_does_not_block_creation(db, seed, monkeypatch):
    await seed(make_victim(1), make_ngo(id=5))

    async def broken(*args, **kwargs):
        raise RuntimeError("need store unavailable")

    monkeypatch.setattr(need_registry, "ensure_need_for_request", broken)

    request, _ = await service_request_workflow.create(db, 1, 5, "Medical", "high")
    request_id = request.id

    assert await db.get(ServiceRequest, request_id, populate_existing=True) is not None
    result = await db.execute(select(VictimNeed))
    assert result.scalars().all() == []

async def test_need_bookkeeping_failure_does_not_block_completion(db, seed, monkeypatch):
    await seed(make_victim(42), make_ngo(id=8))
    [need_id] = await seed(VictimNeed(victim_id=42, need_type="Shelter", urgency_level=UrgencyLevel.HIGH))

    async def broken(*args, **kwargs):
        raise RuntimeError("need store unavailable")

    monkeypatch.setattr(need_registry, "resolve_for_request", broken)

    request, _ = await service_request_workflow.create(db, 42, 8, "Shelter", "high")
    request = await _advance(db, request.id, "approved", "in_progress", "completed")

    stored = await db.get(ServiceRequest, request.id, populate_existing=True)
    assert stored.status == RequestStatus.COMPLETED

    need = await db.get(VictimNeed, need_id, populate_existing=True)
    assert need.status == NeedStatus.PENDING

def _locks(statements, table):
    return [sql for sql in statements if f"FROM {table}" in sql and "FOR UPDATE" in sql]

async def test_status_updates_and_deletes_lock_the_request_row(db, seed):
    await seed(make_victim(1), make_ngo(id=5))
    request, _ = await service_request_workflow.create(db, 1, 5, "Food", "low")
    request_id = request.id

    statements = capture_orm_sql(db)
    await service_request_workflow.update_status(db, request_id, "approved")
    assert _locks(statements, "servicerequest")

    statements.clear()
    await service_request_workflow.delete(db, request_id)
    assert _locks(statements, "servicerequest")

    statements.clear()
    await service_request_workflow.list_requests(db)
    assert not _locks(statements, "servicerequest")

async def test_concurrent_completions_consume_stock_once(session_factory, seed):
    await seed(make_victim(1), make_ngo(id=5))
    [stock_id] = await seed(make_inventory(5, "Food", 10))

    async with session_factory() as session:
        request, _ = await service_request_workflow.create(
            session, 1, 5, "Food", "high",
            items=[ServiceItemCreate(service_type="Rice", quantity=4, inventory_id=stock_id)]
        )
        request_id = request.id
        await _advance(session, request_id, "approved", "in_progress")

    async def complete():
        async with session_factory() as session:
            return await service_request_workflow.update_status(session, request_id, "completed")

    results = await asyncio.gather(complete(), complete(), return_exceptions=True)

    assert sum(isinstance(r, tuple) for r in results) == 1
    assert sum(isinstance(r, InvalidTransitionError) for r in results) == 1

    async with session_factory() as session:
        stock = await session.get(ResourceInventoryItem, stock_id)
        assert stock.quantity == 6
