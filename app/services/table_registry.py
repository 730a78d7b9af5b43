"""
Table catalog and assignment state machine.

Every status change is a single conditional UPDATE ... RETURNING. Reserving
swaps on `status`; every other write is guarded by the row's `version`.
A guarded write that matches no row means another request got there first.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.database import as_utc, storage_errors, transaction, utcnow
from app.events import EventEmitter
from app.exceptions import ConflictError, NotFoundError, StorageError, ValidationError
from app.models.table import BUSY_STATUSES, Table, TableStatus
from app.schemas.base import parse_payload
from app.schemas.table import TableCreate, TableResponse, TableUpdate, TransitionContext

logger = structlog.get_logger()

CLEARED_ASSIGNMENT = {
    "current_reservation_id": None,
    "current_reservation_type": None,
    "current_guest_name": None,
    "current_assigned_by": None,
}

CONTEXT_FIELDS = ("reservation_id", "reservation_type", "guest_name", "assigned_by", "notes")


def natural_key(table_number: str) -> list:
    """Sort key ordering "T2" before "T10" """
    return [
        int(part) if part.isdigit() else part.lower()
        for part in re.split(r"(\d+)", table_number)
    ]


def table_payload(table: Table) -> Dict[str, Any]:
    return TableResponse.model_validate(table).model_dump(mode="json", by_alias=True)


class TableRegistry:
    """Owns the `tables` rows and every transition between table states"""

    def __init__(self, db: AsyncSession, events: EventEmitter):
        self.db = db
        self.events = events

    # Reads

    async def get(self, table_id: UUID) -> Table:
        with storage_errors():
            table = await self.db.get(Table, table_id, populate_existing=True)
        if table is None:
            raise NotFoundError("Table not found")
        return table

    async def list(
        self,
        section: Optional[str] = None,
        status: Optional[str] = None,
        capacity: Optional[int] = None,
    ) -> List[Table]:
        query = select(Table)
        if section:
            query = query.where(Table.section == section)
        if status:
            query = query.where(Table.status == status)
        if capacity:
            query = query.where(Table.capacity == capacity)

        with storage_errors():
            result = await self.db.execute(query.execution_options(populate_existing=True))
            tables = list(result.scalars().all())
        tables.sort(key=lambda t: (t.section, natural_key(t.table_number)))
        return tables

    async def list_available(
        self,
        min_capacity: Optional[int] = None,
        section: Optional[str] = None,
        features: Optional[List[str]] = None,
    ) -> List[Table]:
        query = select(Table).where(
            Table.status == TableStatus.AVAILABLE.value,
            Table.is_active.is_(True),
        )
        if min_capacity:
            query = query.where(Table.capacity >= min_capacity)
        if section:
            query = query.where(Table.section == section)

        with storage_errors():
            result = await self.db.execute(query.execution_options(populate_existing=True))
            tables = list(result.scalars().all())
        if features:
            wanted = set(features)
            tables = [t for t in tables if wanted.issubset(t.features or [])]
        tables.sort(key=lambda t: (t.section, natural_key(t.table_number)))
        return tables

    async def history(self, table_id: UUID) -> List[Dict[str, Any]]:
        table = await self.get(table_id)
        return list(table.assignment_history or [])

    async def find_best_fit(self, required_seats: int) -> List[Table]:
        """Available tables that seat the party, closest fit first"""
        query = select(Table).where(
            Table.status == TableStatus.AVAILABLE.value,
            Table.is_active.is_(True),
            Table.capacity >= required_seats,
        )
        with storage_errors():
            result = await self.db.execute(query.execution_options(populate_existing=True))
            tables = list(result.scalars().all())
        tables.sort(key=lambda t: (t.capacity, natural_key(t.table_number)))
        return tables

    async def tables_for_reservation(self, reservation_id: UUID) -> List[Table]:
        query = select(Table).where(Table.current_reservation_id == reservation_id)
        with storage_errors():
            result = await self.db.execute(query.execution_options(populate_existing=True))
            tables = list(result.scalars().all())
        tables.sort(key=lambda t: natural_key(t.table_number))
        return tables

    # Catalog writes

    async def create(self, data) -> Table:
        table_data = parse_payload(TableCreate, data)
        await self._ensure_number_free(table_data.table_number)

        table = Table(
            **table_data.model_dump(mode="json"),
            status=TableStatus.AVAILABLE.value,
            assignment_history=[],
            version=1,
        )
        try:
            async with transaction(self.db):
                self.db.add(table)
        except StorageError as e:
            if isinstance(e.__cause__, IntegrityError):
                raise self._number_taken(table_data.table_number) from e
            raise

        logger.info("Table created", table_id=str(table.id), table_number=table.table_number)
        await self.events.emit("tableCreated", table_payload(table))
        return table

    async def update_metadata(self, table_id: UUID, data) -> Table:
        """
        Patch descriptive fields.

        A status in the patch goes through the transition state machine
        first, so a conflict there leaves the row untouched.
        """
        patch = parse_payload(TableUpdate, data)
        changes = patch.model_dump(exclude_unset=True, mode="json")
        status = changes.pop("status", None)
        context = {k: changes.pop(k) for k in CONTEXT_FIELDS if k in changes}

        if "table_number" in changes:
            number = (changes["table_number"] or "").strip()
            if not number:
                raise ValidationError("tableNumber cannot be empty")
            changes["table_number"] = number

        for field in ("section", "capacity", "priority", "is_active", "floor", "features"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null")

        table = await self.get(table_id)
        if "table_number" in changes and changes["table_number"] != table.table_number:
            await self._ensure_number_free(changes["table_number"], exclude_id=table_id)

        if status is not None:
            transition_context = TransitionContext(
                **{k: v for k, v in context.items() if v is not None}
            )
            table = await self._apply_transition(table_id, TableStatus(status), transition_context)

        if changes:
            now = utcnow()
            stmt = (
                update(Table)
                .where(Table.id == table_id)
                .values(**changes, version=Table.version + 1, updated_at=now)
                .returning(Table)
                .execution_options(synchronize_session=False, populate_existing=True)
            )
            try:
                async with transaction(self.db):
                    updated = (await self.db.execute(stmt)).scalar_one_or_none()
            except StorageError as e:
                if isinstance(e.__cause__, IntegrityError) and "table_number" in changes:
                    raise self._number_taken(changes["table_number"]) from e
                raise
            if updated is None:
                raise NotFoundError("Table not found")
            table = updated

        logger.info("Table updated", table_id=str(table_id), fields=sorted(changes))
        await self.events.emit("tableUpdated", {"table": table_payload(table)})
        if status is not None:
            await self._emit_status_changed(table)
        return table

    async def delete(self, table_id: UUID) -> None:
        table = await self.get(table_id)
        number, status = table.table_number, table.status

        stmt = (
            delete(Table)
            .where(
                Table.id == table_id,
                Table.status.notin_(BUSY_STATUSES),
                Table.current_reservation_id.is_(None),
            )
            .execution_options(synchronize_session=False)
        )
        async with transaction(self.db):
            result = await self.db.execute(stmt)

        if result.rowcount == 0:
            logger.warning("Table delete refused", table_id=str(table_id), table_number=number, status=status)
            raise ConflictError(
                f"Table {number} has an active reservation and cannot be deleted",
                "TABLE_IN_USE",
                table_number=number,
                current_status=status,
            )

        self.db.expunge(table)
        logger.info("Table deleted", table_id=str(table_id), table_number=number)
        await self.events.emit("tableDeleted", {"tableId": str(table_id), "tableNumber": number})

    # State machine

    async def transition(
        self,
        table_id: UUID,
        target,
        context: Optional[TransitionContext] = None,
    ) -> Table:
        """Move a table to `target`, applying the assignment side effects"""
        try:
            target = TableStatus(target)
        except ValueError:
            raise ValidationError(f"Invalid table status: {target}")
        context = parse_payload(TransitionContext, context or {})

        table = await self._apply_transition(table_id, target, context)

        await self.events.emit("tableUpdated", {"table": table_payload(table)})
        await self._emit_status_changed(table)
        return table

    async def transfer(
        self,
        from_id: UUID,
        to_id: UUID,
        reason: Optional[str] = None,
        assigned_by: Optional[str] = None,
    ) -> Dict[str, Table]:
        """Move the active assignment to another table in one transaction"""
        if from_id == to_id:
            raise ValidationError("Cannot transfer a table to itself")

        source = await self.get(from_id)
        destination = await self.get(to_id)
        source_number, source_status = source.table_number, source.status
        dest_number, dest_status = destination.table_number, destination.status

        if not source.has_assignment or source_status not in BUSY_STATUSES:
            raise ConflictError(
                f"Table {source_number} has no active assignment to transfer",
                "NO_ACTIVE_ASSIGNMENT",
                table_number=source_number,
                current_status=source_status,
            )
        if not destination.is_available:
            raise ConflictError(
                f"Table {dest_number} is not available",
                "TABLE_NOT_AVAILABLE",
                table_number=dest_number,
                current_status=dest_status,
            )
        if destination.capacity < source.capacity:
            raise ConflictError(
                f"Table {dest_number} seats {destination.capacity}, "
                f"fewer than table {source_number} ({source.capacity})",
                "INSUFFICIENT_CAPACITY",
                table_number=dest_number,
                current_status=dest_status,
            )

        now = utcnow()
        notes = reason or "Table transfer"
        entry = self._history_entry(source, TransitionContext(notes=notes, assigned_by=assigned_by), now)

        free_source = (
            update(Table)
            .where(Table.id == from_id, Table.version == source.version)
            .values(
                status=TableStatus.AVAILABLE.value,
                assignment_history=list(source.assignment_history or []) + [entry],
                last_freed_at=now,
                version=Table.version + 1,
                updated_at=now,
                **CLEARED_ASSIGNMENT,
            )
            .returning(Table)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        take_destination = (
            update(Table)
            .where(
                Table.id == to_id,
                Table.version == destination.version,
                Table.status == TableStatus.AVAILABLE.value,
            )
            .values(
                status=source_status,
                current_reservation_id=source.current_reservation_id,
                current_reservation_type=source.current_reservation_type,
                current_guest_name=source.current_guest_name,
                current_assigned_by=assigned_by or source.current_assigned_by,
                assigned_to=source.assigned_to,
                last_assigned_at=now,
                last_occupied_at=source.last_occupied_at,
                version=Table.version + 1,
                updated_at=now,
            )
            .returning(Table)
            .execution_options(synchronize_session=False, populate_existing=True)
        )

        async with transaction(self.db):
            freed = (await self.db.execute(free_source)).scalar_one_or_none()
            if freed is None:
                raise self._concurrent(source_number, source_status)
            taken = (await self.db.execute(take_destination)).scalar_one_or_none()
            if taken is None:
                raise ConflictError(
                    f"Table {dest_number} is not available",
                    "TABLE_NOT_AVAILABLE",
                    table_number=dest_number,
                    current_status=dest_status,
                )

        logger.info(
            "Table assignment transferred",
            from_table=source_number,
            to_table=dest_number,
            reason=notes,
        )
        await self.events.emit(
            "tableTransferred",
            {"fromTable": table_payload(freed), "toTable": table_payload(taken), "reason": notes},
        )
        for table in (freed, taken):
            await self.events.emit("tableUpdated", {"table": table_payload(table)})
            await self._emit_status_changed(table)
        return {"from_table": freed, "to_table": taken}

    async def _apply_transition(self, table_id: UUID, target: TableStatus, context: TransitionContext) -> Table:
        if target is TableStatus.RESERVED:
            return await self._reserve(table_id, context)
        if target is TableStatus.OCCUPIED:
            return await self._occupy(table_id)
        return await self._release(table_id, target, context)

    async def _reserve(self, table_id: UUID, context: TransitionContext) -> Table:
        if context.reservation_id is None:
            raise ValidationError("reservationId is required to reserve a table")

        now = utcnow()
        values = {
            "status": TableStatus.RESERVED.value,
            "current_reservation_id": context.reservation_id,
            "current_reservation_type": context.reservation_type.value,
            "current_guest_name": context.guest_name,
            "current_assigned_by": context.assigned_by,
            "last_assigned_at": now,
            "version": Table.version + 1,
            "updated_at": now,
        }
        if context.assigned_by:
            values["assigned_to"] = context.assigned_by

        # Compare-and-swap on status: a busy table never matches
        stmt = (
            update(Table)
            .where(Table.id == table_id, Table.status.notin_(BUSY_STATUSES))
            .values(**values)
            .returning(Table)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        async with transaction(self.db):
            table = (await self.db.execute(stmt)).scalar_one_or_none()

        if table is None:
            current = await self.get(table_id)
            logger.warning(
                "Table reserve conflict",
                table_id=str(table_id),
                table_number=current.table_number,
                status=current.status,
            )
            raise ConflictError(
                f"Table {current.table_number} is already {current.status}",
                "TABLE_NOT_AVAILABLE",
                table_number=current.table_number,
                current_status=current.status,
            )

        logger.info(
            "Table transitioned",
            table_id=str(table_id),
            table_number=table.table_number,
            to_status=table.status,
            reservation_id=str(context.reservation_id),
        )
        return table

    async def _occupy(self, table_id: UUID) -> Table:
        now = utcnow()
        stmt = (
            update(Table)
            .where(Table.id == table_id, Table.status.in_(BUSY_STATUSES))
            .values(
                status=TableStatus.OCCUPIED.value,
                last_occupied_at=now,
                version=Table.version + 1,
                updated_at=now,
            )
            .returning(Table)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        async with transaction(self.db):
            table = (await self.db.execute(stmt)).scalar_one_or_none()

        if table is None:
            current = await self.get(table_id)
            logger.warning(
                "Table occupy rejected",
                table_id=str(table_id),
                table_number=current.table_number,
                status=current.status,
            )
            raise ConflictError(
                f"Table {current.table_number} is {current.status}; only a reserved table can be occupied",
                "INVALID_TRANSITION",
                table_number=current.table_number,
                current_status=current.status,
            )

        logger.info("Table transitioned", table_id=str(table_id), table_number=table.table_number, to_status=table.status)
        return table

    async def _release(self, table_id: UUID, target: TableStatus, context: TransitionContext) -> Table:
        """Any transition that leaves the table without a reservation"""
        current = await self.get(table_id)
        number, from_status = current.table_number, current.status

        now = utcnow()
        values: Dict[str, Any] = {
            "status": target.value,
            "version": Table.version + 1,
            "updated_at": now,
        }
        if current.has_assignment:
            entry = self._history_entry(current, context, now)
            values["assignment_history"] = list(current.assignment_history or []) + [entry]
            values.update(CLEARED_ASSIGNMENT)
        if target is TableStatus.AVAILABLE:
            values.update(CLEARED_ASSIGNMENT)
            values["last_freed_at"] = now

        stmt = (
            update(Table)
            .where(Table.id == table_id, Table.version == current.version)
            .values(**values)
            .returning(Table)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        async with transaction(self.db):
            table = (await self.db.execute(stmt)).scalar_one_or_none()

        if table is None:
            logger.warning("Table modified concurrently", table_id=str(table_id), table_number=number)
            raise self._concurrent(number, from_status)

        logger.info(
            "Table transitioned",
            table_id=str(table_id),
            table_number=number,
            from_status=from_status,
            to_status=target.value,
        )
        return table

    @staticmethod
    def _history_entry(table: Table, context: TransitionContext, now: datetime) -> Dict[str, Any]:
        assigned_at = as_utc(context.assigned_at or table.last_assigned_at) or now
        if assigned_at > now:
            assigned_at = now
        return {
            "reservation_id": str(table.current_reservation_id),
            "reservation_type": table.current_reservation_type or "restaurant",
            "guest_name": table.current_guest_name or "Guest",
            "assigned_at": assigned_at.isoformat(),
            "freed_at": now.isoformat(),
            "assigned_by": table.current_assigned_by or context.assigned_by,
            "notes": context.notes,
        }

    async def _ensure_number_free(self, table_number: str, exclude_id: Optional[UUID] = None) -> None:
        query = select(Table.id).where(Table.table_number == table_number)
        if exclude_id is not None:
            query = query.where(Table.id != exclude_id)
        with storage_errors():
            taken = await self.db.scalar(query)
        if taken is not None:
            raise self._number_taken(table_number)

    @staticmethod
    def _number_taken(table_number: str) -> ConflictError:
        return ConflictError(f"Table number {table_number} already exists", "TABLE_NUMBER_EXISTS")

    @staticmethod
    def _concurrent(table_number: str, status: str) -> ConflictError:
        return ConflictError(
            f"Table {table_number} was modified by another request, retry",
            "CONCURRENT_MODIFICATION",
            table_number=table_number,
            current_status=status,
        )

    async def _emit_status_changed(self, table: Table) -> None:
        await self.events.emit(
            "tableStatusChanged",
            {"tableId": str(table.id), "tableNumber": table.table_number, "status": table.status},
        )
