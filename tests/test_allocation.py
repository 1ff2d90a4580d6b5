from datetime import date, timedelta

import pytest

from app.core.allocation import AllocationEngine, allocation_engine
from app.core.errors import NotFoundError, ValidationError
from app.core.geofencing import Coordinate
from app.core.inventory import inventory_ledger

from conftest import make_area, make_event, make_inventory, make_ngo

DHAKA = Coordinate(23.81, 90.41)
NEAR_DHAKA = Coordinate(23.83, 90.40)

async def test_scenario_coverage_near_and_far(db, seed):
    [ngo_id] = await seed(make_ngo(name="NGO X"))
    await seed(make_area(ngo_id, DHAKA.latitude, DHAKA.longitude, 5))

    near = await allocation_engine.allocate(db, location=NEAR_DHAKA)
    assert [c.ngo_id for c in near] == [ngo_id]
    assert near[0].ngo.name == "NGO X"
    assert near[0].available_resources is None

    assert await allocation_engine.allocate(db, location=Coordinate(24.00, 90.41)) == []

async def test_inactive_ngos_and_areas_are_skipped(db, seed):
    [active_id, inactive_id] = await seed(make_ngo(name="Active"), make_ngo(name="Closed", is_active=False))
    await seed(
        make_area(active_id, 23.81, 90.41, 5, is_active=False),
        make_area(inactive_id, 23.81, 90.41, 5),
    )

    assert await allocation_engine.allocate(db, location=NEAR_DHAKA) == []

async def test_need_type_filters_ngos_and_attaches_fresh_stock(db, seed):
    [medical_id, food_id] = await seed(
        make_ngo(name="Clinic", focus_area="Medical"),
        make_ngo(name="Kitchen", support_type="Food"),
    )
    await seed(
        make_area(medical_id, 23.81, 90.41, 5),
        make_area(food_id, 23.82, 90.40, 5),
    )
    today = date(2024, 6, 1)
    [kit_id, _, _] = await seed(
        make_inventory(medical_id, "Medical", 10),
        make_inventory(medical_id, "Medical", 10, expiry_date=today - timedelta(days=1)),
        make_inventory(medical_id, "Medical", 0),
    )

    candidates = await allocation_engine.allocate(db, location=NEAR_DHAKA, need_type="medical", as_of=today)

    assert [c.ngo_id for c in candidates] == [medical_id]
    assert [item.id for item in candidates[0].available_resources] == [kit_id]

async def test_matching_ngo_without_stock_gets_empty_resources(db, seed):
    [ngo_id] = await seed(make_ngo(focus_area="Shelter"))
    await seed(make_area(ngo_id, 23.81, 90.41, 5))

    candidates = await allocation_engine.allocate(db, location=NEAR_DHAKA, need_type="Shelter")

    assert len(candidates) == 1
    assert candidates[0].available_resources == []

async def test_overlapping_areas_repeat_unless_unique_requested(db, seed):
    [ngo_id] = await seed(make_ngo())
    [far_area, near_area] = await seed(
        make_area(ngo_id, 23.81, 90.41, 10),
        make_area(ngo_id, 23.83, 90.40, 10),
    )

    candidates = await allocation_engine.allocate(db, location=NEAR_DHAKA)
    assert [c.service_area_id for c in candidates] == [near_area, far_area]

    unique = await allocation_engine.allocate(db, location=NEAR_DHAKA, unique_ngos=True)
    assert [c.service_area_id for c in unique] == [near_area]

async def test_max_distance_limits_area_radius(db, seed):
    [small_id, big_id] = await seed(make_ngo(name="Small"), make_ngo(name="Big"))
    await seed(
        make_area(small_id, 23.81, 90.41, 5),
        make_area(big_id, 23.81, 90.41, 50),
    )

    candidates = await allocation_engine.allocate(db, location=NEAR_DHAKA, max_distance_km=10)
    assert [c.ngo_id for c in candidates] == [small_id]

    with pytest.raises(ValidationError):
        await allocation_engine.allocate(db, location=NEAR_DHAKA, max_distance_km=0)

async def test_event_location_is_used(db, seed):
    [ngo_id] = await seed(make_ngo())
    await seed(make_area(ngo_id, 23.81, 90.41, 5))
    [located, unlocated] = await seed(
        make_event(latitude=23.83, longitude=90.40),
        make_event(location="Somewhere unmapped"),
    )

    candidates = await allocation_engine.allocate(db, event_id=located)
    assert [c.ngo_id for c in candidates] == [ngo_id]

    with pytest.raises(NotFoundError):
        await allocation_engine.allocate(db, event_id=unlocated)
    with pytest.raises(NotFoundError):
        await allocation_engine.allocate(db, event_id=404)

async def test_location_is_required_and_validated(db):
    with pytest.raises(ValidationError):
        await allocation_engine.allocate(db)
    with pytest.raises(ValidationError):
        await allocation_engine.allocate(db, location=Coordinate(123.0, 10.0))

async def test_matcher_is_pluggable(db, seed):
    [ngo_id] = await seed(make_ngo(focus_area="medical"))
    await seed(make_area(ngo_id, 23.81, 90.41, 5))

    def exact(need_type, candidate):
        return candidate is not None and need_type == candidate

    strict = AllocationEngine(inventory=inventory_ledger, matcher=exact)

    assert await strict.allocate(db, location=NEAR_DHAKA, need_type="Medical") == []
    assert len(await strict.allocate(db, location=NEAR_DHAKA, need_type="medical")) == 1
