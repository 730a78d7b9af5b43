"""Tests for the table catalog and its assignment state machine"""

import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.database import Base
from app.exceptions import ConflictError, NotFoundError, StorageError, ValidationError
from app.models.table import TableStatus
from app.schemas.table import TransitionContext
from app.services.table_registry import TableRegistry, natural_key


def reserve_context(**fields):
    fields.setdefault("reservation_id", uuid4())
    fields.setdefault("guest_name", "Ada Lovelace")
    return TransitionContext(**fields)


def assert_assignment_invariant(table):
    busy = table.status in (TableStatus.RESERVED.value, TableStatus.OCCUPIED.value)
    assert busy == (table.current_reservation_id is not None)
    if table.status == TableStatus.AVAILABLE.value:
        assert table.current_reservation == {
            "reservation_id": None,
            "reservation_type": None,
            "guest_name": None,
            "assigned_by": None,
        }


@pytest.mark.asyncio
async def test_create_table_starts_available(make_table, event_sink):
    table = await make_table("T1", 4, section="restaurant", features=["window", "window", "booth"])

    assert table.status == TableStatus.AVAILABLE.value
    assert table.features == ["window", "booth"]
    assert table.version == 1
    assert table.assignment_history == []
    assert [e["data"]["tableNumber"] for e in event_sink.events("tableCreated")] == ["T1"]


@pytest.mark.asyncio
async def test_create_rejects_duplicate_number(make_table):
    await make_table("T1")

    with pytest.raises(ConflictError) as exc:
        await make_table("T1", 2)

    assert exc.value.error_code == "TABLE_NUMBER_EXISTS"


@pytest.mark.asyncio
@pytest.mark.parametrize("fields", [
    {"capacity": 0},
    {"capacity": 51},
    {"section": "kitchen"},
    {"features": ["jacuzzi"]},
    {"tableNumber": "   "},
])
async def test_create_validates_before_writing(registry, fields):
    with pytest.raises(ValidationError):
        await registry.create({"tableNumber": "T9", "capacity": 4, **fields})

    assert await registry.list() == []


@pytest.mark.asyncio
async def test_get_unknown_table(registry):
    with pytest.raises(NotFoundError):
        await registry.get(uuid4())


@pytest.mark.asyncio
async def test_list_orders_by_section_then_natural_number(registry, make_table):
    for number in ("T10", "T2", "T1"):
        await make_table(number)
    await make_table("B1", section="bar")

    tables = await registry.list()
    assert [t.table_number for t in tables] == ["B1", "T1", "T2", "T10"]

    restaurant = await registry.list(section="restaurant", capacity=4)
    assert [t.table_number for t in restaurant] == ["T1", "T2", "T10"]


@pytest.mark.asyncio
async def test_list_capacity_filter_is_exact(registry, make_table):
    await make_table("T1", 4)
    await make_table("T2", 6)

    assert [t.table_number for t in await registry.list(capacity=4)] == ["T1"]
    assert [t.table_number for t in await registry.list(capacity=6)] == ["T2"]
    assert await registry.list(capacity=5) == []


def test_natural_key_orders_embedded_numbers():
    numbers = ["T10", "t2", "T1", "10", "2"]
    assert sorted(numbers, key=natural_key) == ["2", "10", "T1", "t2", "T10"]


@pytest.mark.asyncio
async def test_reserve_sets_current_reservation(registry, make_table, event_sink):
    table = await make_table("T1")
    reservation_id = uuid4()

    reserved = await registry.transition(
        table.id,
        TableStatus.RESERVED,
        TransitionContext(reservation_id=reservation_id, guest_name="Ada", assigned_by="host-1"),
    )

    assert reserved.status == "reserved"
    assert reserved.current_reservation_id == reservation_id
    assert reserved.current_guest_name == "Ada"
    assert reserved.assigned_to == "host-1"
    assert reserved.last_assigned_at is not None
    assert reserved.version == 2
    assert_assignment_invariant(reserved)

    changed = event_sink.events("tableStatusChanged")
    assert changed[-1]["data"] == {"tableId": str(table.id), "tableNumber": "T1", "status": "reserved"}
    assert event_sink.events("tableUpdated")[-1]["data"]["table"]["status"] == "reserved"


@pytest.mark.asyncio
async def test_reserve_requires_reservation_id(registry, make_table):
    table = await make_table("T1")

    with pytest.raises(ValidationError):
        await registry.transition(table.id, "reserved", TransitionContext())

    assert (await registry.get(table.id)).status == "available"


@pytest.mark.asyncio
@pytest.mark.parametrize("busy_status", ["reserved", "occupied"])
async def test_reserving_busy_table_conflicts_and_leaves_it_unchanged(registry, make_table, busy_status):
    table = await make_table("T1")
    first = uuid4()
    await registry.transition(table.id, "reserved", reserve_context(reservation_id=first, guest_name="First"))
    if busy_status == "occupied":
        await registry.transition(table.id, "occupied")
    before = await registry.get(table.id)
    snapshot = (before.status, before.current_reservation_id, before.current_guest_name, before.version)

    with pytest.raises(ConflictError) as exc:
        await registry.transition(table.id, "reserved", reserve_context(guest_name="Second"))

    assert exc.value.error_code == "TABLE_NOT_AVAILABLE"
    assert exc.value.table_number == "T1"
    assert exc.value.current_status == busy_status

    after = await registry.get(table.id)
    assert (after.status, after.current_reservation_id, after.current_guest_name, after.version) == snapshot


@pytest.mark.asyncio
async def test_second_of_two_reserves_on_one_table_loses(registry, make_table):
    table = await make_table("T1")
    outcomes = []

    for _ in range(2):
        try:
            await registry.transition(table.id, "reserved", reserve_context())
            outcomes.append("ok")
        except ConflictError as e:
            outcomes.append(e.error_code)

    assert outcomes == ["ok", "TABLE_NOT_AVAILABLE"]


@pytest.mark.asyncio
async def test_concurrent_reserves_on_separate_sessions_admit_one(tmp_path, events, event_sink):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'venue.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with sessions() as db:
        table = await TableRegistry(db, events).create({"tableNumber": "T1", "capacity": 4})
        table_id = table.id

    async def reserve():
        async with sessions() as db:
            try:
                await TableRegistry(db, events).transition(table_id, "reserved", reserve_context())
                return "ok"
            except ConflictError as e:
                return e.error_code

    try:
        outcomes = await asyncio.gather(*(reserve() for _ in range(5)))

        async with sessions() as db:
            after = await TableRegistry(db, events).get(table_id)
            assert after.status == "reserved"
            assert after.version == 2
    finally:
        await engine.dispose()

    assert sorted(outcomes) == ["TABLE_NOT_AVAILABLE"] * 4 + ["ok"]
    assert len(event_sink.events("tableStatusChanged")) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["dirty", "maintenance", "out_of_service"])
async def test_housekeeping_table_can_be_reserved(registry, make_table, status):
    table = await make_table("T1")
    await registry.transition(table.id, status)

    reserved = await registry.transition(table.id, "reserved", reserve_context())

    assert reserved.status == "reserved"


@pytest.mark.asyncio
async def test_occupy_reserved_table(registry, make_table):
    table = await make_table("T1")
    await registry.transition(table.id, "reserved", reserve_context())

    occupied = await registry.transition(table.id, "occupied")

    assert occupied.status == "occupied"
    assert occupied.last_occupied_at is not None
    assert_assignment_invariant(occupied)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["available", "dirty"])
async def test_occupy_without_reservation_is_rejected(registry, make_table, status):
    table = await make_table("T1")
    if status != "available":
        await registry.transition(table.id, status)

    with pytest.raises(ConflictError) as exc:
        await registry.transition(table.id, "occupied")

    assert exc.value.error_code == "INVALID_TRANSITION"
    assert (await registry.get(table.id)).status == status


@pytest.mark.asyncio
async def test_free_appends_one_history_entry(registry, make_table):
    table = await make_table("T1")
    reservation_id = uuid4()
    await registry.transition(
        table.id, "reserved", reserve_context(reservation_id=reservation_id, assigned_by="host-1")
    )

    freed = await registry.transition(table.id, "available", TransitionContext(notes="Guests left"))

    assert freed.status == "available"
    assert freed.last_freed_at is not None
    assert_assignment_invariant(freed)
    assert len(freed.assignment_history) == 1

    entry = freed.assignment_history[0]
    assert entry["reservation_id"] == str(reservation_id)
    assert entry["reservation_type"] == "restaurant"
    assert entry["guest_name"] == "Ada Lovelace"
    assert entry["assigned_by"] == "host-1"
    assert entry["notes"] == "Guests left"
    assert datetime.fromisoformat(entry["freed_at"]) >= datetime.fromisoformat(entry["assigned_at"])


@pytest.mark.asyncio
async def test_free_uses_supplied_assigned_at(registry, make_table):
    table = await make_table("T1")
    await registry.transition(table.id, "reserved", reserve_context())
    seated_at = datetime.now(timezone.utc) - timedelta(hours=2)

    freed = await registry.transition(table.id, "available", TransitionContext(assigned_at=seated_at))

    assert datetime.fromisoformat(freed.assignment_history[0]["assigned_at"]) == seated_at


@pytest.mark.asyncio
async def test_free_without_assignment_adds_no_history(registry, make_table):
    table = await make_table("T1")
    await registry.transition(table.id, "dirty")

    freed = await registry.transition(table.id, "available")

    assert freed.status == "available"
    assert freed.assignment_history == []
    assert freed.last_freed_at is not None


@pytest.mark.asyncio
async def test_housekeeping_on_assigned_table_closes_assignment(registry, make_table):
    table = await make_table("T1")
    await registry.transition(table.id, "reserved", reserve_context())

    dirty = await registry.transition(table.id, "maintenance", TransitionContext(notes="Broken leg"))

    assert dirty.status == "maintenance"
    assert dirty.current_reservation_id is None
    assert len(dirty.assignment_history) == 1
    assert dirty.assignment_history[0]["notes"] == "Broken leg"
    assert_assignment_invariant(dirty)


@pytest.mark.asyncio
async def test_unknown_status_is_validation_error(registry, make_table):
    table = await make_table("T1")

    with pytest.raises(ValidationError):
        await registry.transition(table.id, "cleaning")


@pytest.mark.asyncio
async def test_transition_unknown_table(registry):
    with pytest.raises(NotFoundError):
        await registry.transition(uuid4(), "reserved", reserve_context())
    with pytest.raises(NotFoundError):
        await registry.transition(uuid4(), "available")


@pytest.mark.asyncio
async def test_stale_version_write_reports_conflict(registry, make_table, monkeypatch):
    table = await make_table("T1")
    await registry.transition(table.id, "reserved", reserve_context())
    current = await registry.get(table.id)
    stale = SimpleNamespace(
        id=current.id,
        table_number=current.table_number,
        status=current.status,
        version=current.version,
        assignment_history=list(current.assignment_history),
        current_reservation_id=current.current_reservation_id,
        current_reservation_type=current.current_reservation_type,
        current_guest_name=current.current_guest_name,
        current_assigned_by=current.current_assigned_by,
        last_assigned_at=current.last_assigned_at,
        has_assignment=True,
    )

    # Another request seats the party in between our read and write
    await registry.transition(table.id, "occupied")

    real_get = registry.get
    reads = iter([stale])

    async def stale_get(table_id):
        return next(reads, None) or await real_get(table_id)

    monkeypatch.setattr(registry, "get", stale_get)

    with pytest.raises(ConflictError) as exc:
        await registry.transition(table.id, "available")

    assert exc.value.error_code == "CONCURRENT_MODIFICATION"
    after = await registry.get(table.id)
    assert after.status == "occupied"
    assert after.assignment_history == []


@pytest.mark.asyncio
async def test_find_best_fit_prefers_smallest_available(registry, make_table):
    small = await make_table("T1", 2)
    fit = await make_table("T2", 4)
    taken = await make_table("T3", 4)
    await registry.transition(taken.id, "reserved", reserve_context())

    candidates = await registry.find_best_fit(3)

    assert [t.id for t in candidates] == [fit.id]
    assert small.id not in [t.id for t in candidates]


@pytest.mark.asyncio
async def test_find_best_fit_breaks_ties_by_table_number(registry, make_table):
    await make_table("T10", 4)
    await make_table("T9", 4)
    await make_table("T3", 6)
    await make_table("T20", 4, is_active=False)

    candidates = await registry.find_best_fit(4)

    assert [t.table_number for t in candidates] == ["T9", "T10", "T3"]


@pytest.mark.asyncio
async def test_find_best_fit_empty_when_nothing_seats_party(registry, make_table):
    await make_table("T1", 4)

    assert await registry.find_best_fit(6) == []


@pytest.mark.asyncio
async def test_list_available_filters_capacity_section_and_features(registry, make_table):
    await make_table("T1", 2, features=["window"])
    await make_table("T2", 6, features=["window", "booth"])
    busy = await make_table("T3", 6, features=["window", "booth"])
    await make_table("P1", 8, section="patio", features=["window", "booth"])
    await registry.transition(busy.id, "reserved", reserve_context())

    tables = await registry.list_available(min_capacity=4, section="restaurant", features=["booth", "window"])

    assert [t.table_number for t in tables] == ["T2"]


@pytest.mark.asyncio
async def test_update_metadata_patches_fields(registry, make_table, event_sink):
    table = await make_table("T1", 4)

    updated = await registry.update_metadata(
        table.id,
        {"capacity": 6, "features": ["booth"], "specialNotes": "Near the piano", "tableNumber": " T1A "},
    )

    assert updated.capacity == 6
    assert updated.features == ["booth"]
    assert updated.special_notes == "Near the piano"
    assert updated.table_number == "T1A"
    assert updated.version == 2
    assert event_sink.events("tableUpdated")[-1]["data"]["table"]["capacity"] == 6


@pytest.mark.asyncio
async def test_update_metadata_rejects_empty_or_duplicate_number(registry, make_table):
    await make_table("T1")
    table = await make_table("T2")

    with pytest.raises(ValidationError):
        await registry.update_metadata(table.id, {"tableNumber": "  "})
    with pytest.raises(ConflictError) as exc:
        await registry.update_metadata(table.id, {"tableNumber": "T1"})

    assert exc.value.error_code == "TABLE_NUMBER_EXISTS"
    assert (await registry.get(table.id)).table_number == "T2"


@pytest.mark.asyncio
async def test_update_metadata_cannot_bypass_reserve_conflict(registry, make_table):
    table = await make_table("T1", 4)
    await registry.transition(table.id, "reserved", reserve_context(guest_name="First"))

    with pytest.raises(ConflictError) as exc:
        await registry.update_metadata(
            table.id,
            {"status": "reserved", "reservationId": str(uuid4()), "guestName": "Second", "capacity": 8},
        )

    assert exc.value.error_code == "TABLE_NOT_AVAILABLE"
    after = await registry.get(table.id)
    assert after.current_guest_name == "First"
    assert after.capacity == 4


@pytest.mark.asyncio
async def test_update_metadata_routes_status_through_state_machine(registry, make_table, event_sink):
    table = await make_table("T1", 4)
    reservation_id = uuid4()

    updated = await registry.update_metadata(
        table.id,
        {"status": "reserved", "reservationId": str(reservation_id), "priority": 8},
    )

    assert updated.status == "reserved"
    assert updated.current_reservation_id == reservation_id
    assert updated.priority == 8
    assert event_sink.events("tableStatusChanged")[-1]["data"]["status"] == "reserved"


@pytest.mark.asyncio
async def test_update_metadata_rejects_unknown_fields(registry, make_table):
    table = await make_table("T1")

    with pytest.raises(ValidationError):
        await registry.update_metadata(table.id, {"currentReservation": {"guestName": "Sneaky"}})


@pytest.mark.asyncio
async def test_tables_for_reservation(registry, make_table):
    reservation_id = uuid4()
    first = await make_table("T1")
    second = await make_table("T2")
    await make_table("T3")
    for table in (second, first):
        await registry.transition(table.id, "reserved", reserve_context(reservation_id=reservation_id))

    tables = await registry.tables_for_reservation(reservation_id)

    assert [t.table_number for t in tables] == ["T1", "T2"]


@pytest.mark.asyncio
async def test_transfer_moves_assignment_and_records_reason(registry, make_table, event_sink):
    source = await make_table("T1", 4)
    destination = await make_table("T2", 6)
    reservation_id = uuid4()
    await registry.transition(source.id, "reserved", reserve_context(reservation_id=reservation_id))
    await registry.transition(source.id, "occupied")

    moved = await registry.transfer(source.id, destination.id, reason="Party grew")

    freed, taken = moved["from_table"], moved["to_table"]
    assert freed.status == "available"
    assert freed.current_reservation_id is None
    assert freed.assignment_history[-1]["notes"] == "Party grew"
    assert taken.status == "occupied"
    assert taken.current_reservation_id == reservation_id
    assert taken.last_occupied_at is not None
    assert_assignment_invariant(freed)
    assert_assignment_invariant(taken)
    assert len(event_sink.events("tableTransferred")) == 1


@pytest.mark.asyncio
async def test_transfer_default_reason(registry, make_table):
    source = await make_table("T1", 4)
    destination = await make_table("T2", 4)
    await registry.transition(source.id, "reserved", reserve_context())

    moved = await registry.transfer(source.id, destination.id)

    assert moved["from_table"].assignment_history[-1]["notes"] == "Table transfer"


@pytest.mark.asyncio
async def test_transfer_to_smaller_table_leaves_both_unchanged(registry, make_table):
    source = await make_table("T1", 6)
    destination = await make_table("T2", 2)
    await registry.transition(source.id, "reserved", reserve_context())

    with pytest.raises(ConflictError) as exc:
        await registry.transfer(source.id, destination.id)

    assert exc.value.error_code == "INSUFFICIENT_CAPACITY"
    assert (await registry.get(source.id)).status == "reserved"
    assert (await registry.get(destination.id)).status == "available"


@pytest.mark.asyncio
async def test_transfer_to_busy_table_leaves_both_unchanged(registry, make_table):
    source = await make_table("T1", 4)
    destination = await make_table("T2", 4)
    source_reservation, dest_reservation = uuid4(), uuid4()
    await registry.transition(source.id, "reserved", reserve_context(reservation_id=source_reservation))
    await registry.transition(destination.id, "reserved", reserve_context(reservation_id=dest_reservation))

    with pytest.raises(ConflictError) as exc:
        await registry.transfer(source.id, destination.id)

    assert exc.value.error_code == "TABLE_NOT_AVAILABLE"
    assert (await registry.get(source.id)).current_reservation_id == source_reservation
    assert (await registry.get(destination.id)).current_reservation_id == dest_reservation


@pytest.mark.asyncio
async def test_transfer_requires_active_assignment(registry, make_table):
    source = await make_table("T1", 4)
    destination = await make_table("T2", 4)

    with pytest.raises(ConflictError) as exc:
        await registry.transfer(source.id, destination.id)

    assert exc.value.error_code == "NO_ACTIVE_ASSIGNMENT"


@pytest.mark.asyncio
async def test_transfer_rejects_same_or_unknown_table(registry, make_table):
    table = await make_table("T1", 4)

    with pytest.raises(ValidationError):
        await registry.transfer(table.id, table.id)
    with pytest.raises(NotFoundError):
        await registry.transfer(table.id, uuid4())


@pytest.mark.asyncio
async def test_delete_free_table(registry, make_table, event_sink):
    table = await make_table("T1")

    await registry.delete(table.id)

    with pytest.raises(NotFoundError):
        await registry.get(table.id)
    assert event_sink.events("tableDeleted")[-1]["data"]["tableNumber"] == "T1"


@pytest.mark.asyncio
async def test_delete_reserved_table_conflicts(registry, make_table):
    table = await make_table("T1")
    await registry.transition(table.id, "reserved", reserve_context())

    with pytest.raises(ConflictError) as exc:
        await registry.delete(table.id)

    assert exc.value.error_code == "TABLE_IN_USE"
    assert (await registry.get(table.id)).status == "reserved"


@pytest.mark.asyncio
async def test_event_sink_failure_does_not_fail_transition(registry, make_table, event_sink):
    table = await make_table("T1")

    async def broken_publish(channel, message):
        raise ConnectionError("redis down")

    event_sink.publish = broken_publish

    reserved = await registry.transition(table.id, "reserved", reserve_context())

    assert reserved.status == "reserved"


@pytest.mark.asyncio
async def test_storage_failure_on_read_raises_storage_error(registry, make_table, monkeypatch):
    table = await make_table("T1")

    async def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(registry.db, "execute", broken)
    monkeypatch.setattr(registry.db, "get", broken)

    with pytest.raises(StorageError):
        await registry.list()
    with pytest.raises(StorageError):
        await registry.find_best_fit(2)
    with pytest.raises(StorageError):
        await registry.get(table.id)
