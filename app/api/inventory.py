from fastapi import APIRouter
from datetime import date
from typing import Any, List, Optional

from app.database import SessionDep
from app.core.inventory import inventory_ledger
from app.models.ngo import (
    ConsumeRequest,
    ResourceInventoryCreate,
    ResourceInventoryRead,
    ResourceInventoryUpdate,
)
from app.models.service import ServiceItemRead

router = APIRouter()

@router.post("", response_model=ResourceInventoryRead, status_code=201)
async def create_inventory_item(db: SessionDep, item_data: ResourceInventoryCreate):
    return await inventory_ledger.create(db, item_data)

@router.get("", response_model=List[ResourceInventoryRead])
async def list_inventory(
    db: SessionDep,
    ngo_id: Optional[int] = None,
    resource_type: Optional[str] = None,
    is_available: Optional[bool] = None,
    expiry_before: Optional[date] = None,
    expiry_after: Optional[date] = None
):
    return await inventory_ledger.list_items(
        db,
        ngo_id=ngo_id,
        resource_type=resource_type,
        is_available=is_available,
        expiry_before=expiry_before,
        expiry_after=expiry_after
    )

@router.get("/available", response_model=List[ResourceInventoryRead])
async def list_available_inventory(
    db: SessionDep,
    ngo_id: Optional[int] = None,
    resource_type: Optional[str] = None,
    not_expired_as_of: Optional[date] = None
):
    """Stock that can be allocated right now (flag set and quantity left)"""
    return await inventory_ledger.list_available(
        db,
        ngo_id=ngo_id,
        resource_type=resource_type,
        not_expired_as_of=not_expired_as_of
    )

@router.get("/{inventory_id}")
async def get_inventory_item(db: SessionDep, inventory_id: int) -> dict[str, Any]:
    item = await inventory_ledger.get(db, inventory_id)
    service_items = await inventory_ledger.referencing_items(db, inventory_id)

    return {
        **ResourceInventoryRead.model_validate(item).model_dump(mode="json"),
        "service_items": [
            ServiceItemRead.model_validate(service_item).model_dump(mode="json")
            for service_item in service_items
        ]
    }

@router.put("/{inventory_id}", response_model=ResourceInventoryRead)
async def update_inventory_item(
    db: SessionDep,
    inventory_id: int,
    item_data: ResourceInventoryUpdate
):
    return await inventory_ledger.update(db, inventory_id, item_data)

@router.post("/{inventory_id}/consume", response_model=ResourceInventoryRead)
async def consume_inventory(db: SessionDep, inventory_id: int, consume_data: ConsumeRequest):
    return await inventory_ledger.consume(db, inventory_id, consume_data.amount)

@router.delete("/{inventory_id}")
async def delete_inventory_item(db: SessionDep, inventory_id: int) -> dict[str, str]:
    await inventory_ledger.delete(db, inventory_id)
    return {"message": "Inventory item deleted successfully"}
