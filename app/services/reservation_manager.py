"""
Reservation lifecycle for accommodation, restaurant and meeting bookings.

Status changes drive the table registry: confirming a restaurant booking
claims the best-fitting free table, cancelling or a no-show frees it again.
Table and notification side effects never undo a committed status change.
"""

import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, FrozenSet, Optional, Type
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.database import storage_errors, transaction, utcnow
from app.events import EventEmitter
from app.exceptions import AppError, ConflictError, NotFoundError, ValidationError
from app.models.reservation import (
    AccommodationReservation,
    MeetingReservation,
    ReservationKind,
    ReservationStatus,
    RestaurantReservation,
)
from app.models.table import TableStatus
from app.notifications import Notifier
from app.schemas.base import CamelModel, parse_payload
from app.schemas.reservation import (
    AccommodationCreate,
    AccommodationResponse,
    AccommodationUpdate,
    MeetingCreate,
    MeetingResponse,
    MeetingUpdate,
    RestaurantCreate,
    RestaurantResponse,
    RestaurantUpdate,
)
from app.schemas.table import TransitionContext
from app.services.table_registry import TableRegistry

logger = structlog.get_logger()

BASE_STATUSES = frozenset({
    ReservationStatus.PENDING,
    ReservationStatus.CONFIRMED,
    ReservationStatus.CANCELLED,
})

# status -> statuses it may move to
TRANSITIONS = {
    ReservationStatus.PENDING: {ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED},
    ReservationStatus.CONFIRMED: {
        ReservationStatus.CANCELLED,
        ReservationStatus.SEATED,
        ReservationStatus.NO_SHOW,
    },
}

SORT_OPTIONS = ("date_desc", "date_asc", "name")
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class KindConfig:
    """Everything that differs between reservation kinds"""
    model: Type
    create_schema: Type[CamelModel]
    update_schema: Type[CamelModel]
    response_schema: Type[CamelModel]
    date_field: str
    statuses: FrozenSet[ReservationStatus]


RESERVATION_KINDS: Dict[ReservationKind, KindConfig] = {
    ReservationKind.ACCOMMODATION: KindConfig(
        model=AccommodationReservation,
        create_schema=AccommodationCreate,
        update_schema=AccommodationUpdate,
        response_schema=AccommodationResponse,
        date_field="arrival_date",
        statuses=BASE_STATUSES,
    ),
    ReservationKind.RESTAURANT: KindConfig(
        model=RestaurantReservation,
        create_schema=RestaurantCreate,
        update_schema=RestaurantUpdate,
        response_schema=RestaurantResponse,
        date_field="date",
        statuses=BASE_STATUSES | {ReservationStatus.SEATED, ReservationStatus.NO_SHOW},
    ),
    ReservationKind.MEETING: KindConfig(
        model=MeetingReservation,
        create_schema=MeetingCreate,
        update_schema=MeetingUpdate,
        response_schema=MeetingResponse,
        date_field="reservation_date",
        statuses=BASE_STATUSES,
    ),
}


def parse_kind(kind) -> ReservationKind:
    try:
        return ReservationKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown reservation type: {kind}")


def kind_config(kind) -> KindConfig:
    return RESERVATION_KINDS[parse_kind(kind)]


def allowed_sources(config: KindConfig, target: ReservationStatus) -> list:
    """Statuses from which `target` can be reached for this kind"""
    return [
        source.value
        for source, targets in TRANSITIONS.items()
        if target in targets and source in config.statuses
    ]


def reservation_payload(reservation) -> Dict[str, Any]:
    config = RESERVATION_KINDS[reservation.kind]
    return config.response_schema.model_validate(reservation).model_dump(mode="json", by_alias=True)


class ReservationManager:
    """Create, query and move reservations through their statuses"""

    def __init__(
        self,
        db: AsyncSession,
        registry: TableRegistry,
        notifier: Notifier,
        events: EventEmitter,
    ):
        self.db = db
        self.registry = registry
        self.notifier = notifier
        self.events = events

    async def create(self, kind, payload):
        config = kind_config(kind)
        data = parse_payload(config.create_schema, payload)

        reservation = config.model(**data.to_columns(), status=ReservationStatus.PENDING.value)
        async with transaction(self.db):
            self.db.add(reservation)

        logger.info(
            "Reservation created",
            reservation_id=str(reservation.id),
            kind=reservation.kind.value,
        )
        await self.notifier.send_acknowledgement(reservation)
        await self.events.emit("reservationCreated", reservation_payload(reservation))
        return reservation

    async def get(self, kind, reservation_id: UUID):
        config = kind_config(kind)
        with storage_errors():
            reservation = await self.db.get(config.model, reservation_id, populate_existing=True)
        if reservation is None:
            raise NotFoundError(f"{config.model.kind.label} reservation not found")
        return reservation

    async def list(
        self,
        kind,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        sort_by: str = "date_desc",
        page: int = 1,
        page_size: int = 20,
    ) -> Dict[str, Any]:
        """One page of reservations plus paging metadata"""
        config = kind_config(kind)
        model = config.model

        if sort_by not in SORT_OPTIONS:
            raise ValidationError(f"sortBy must be one of: {', '.join(SORT_OPTIONS)}")
        if page < 1 or not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationError(f"page must be >= 1 and pageSize between 1 and {MAX_PAGE_SIZE}")

        query = select(model)
        if status:
            query = query.where(model.status == self._parse_status(config, status).value)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(
                or_(
                    model.guest_name.ilike(pattern),
                    model.guest_email.ilike(pattern),
                    model.guest_phone.ilike(pattern),
                )
            )
        date_column = getattr(model, config.date_field)
        if start_date:
            query = query.where(date_column >= start_date)
        if end_date:
            query = query.where(date_column <= end_date)

        with storage_errors():
            total = await self.db.scalar(select(func.count()).select_from(query.subquery()))

        if sort_by == "name":
            query = query.order_by(model.guest_name.asc(), model.created_at.desc())
        elif sort_by == "date_asc":
            query = query.order_by(model.created_at.asc())
        else:
            query = query.order_by(model.created_at.desc())

        query = query.offset((page - 1) * page_size).limit(page_size)
        with storage_errors():
            result = await self.db.execute(query.execution_options(populate_existing=True))
            items = list(result.scalars().all())

        return {
            "items": items,
            "total": total or 0,
            "page": page,
            "page_size": page_size,
            "total_pages": math.ceil((total or 0) / page_size),
        }

    async def update_status(self, kind, reservation_id: UUID, new_status, actor: Optional[str] = None):
        """
        Move a reservation to `new_status` and apply the table side effects.

        The write only matches while the stored status is a legal source for
        the move, so two admins racing on one booking cannot both win.
        """
        config = kind_config(kind)
        target = self._parse_status(config, new_status)
        model = config.model

        await self.get(kind, reservation_id)

        stmt = (
            update(model)
            .where(model.id == reservation_id, model.status.in_(allowed_sources(config, target)))
            .values(status=target.value, updated_at=utcnow())
            .returning(model)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        async with transaction(self.db):
            reservation = (await self.db.execute(stmt)).scalar_one_or_none()

        if reservation is None:
            current = await self.get(kind, reservation_id)
            logger.warning(
                "Invalid reservation transition",
                reservation_id=str(reservation_id),
                from_status=current.status,
                to_status=target.value,
            )
            raise ConflictError(
                f"Cannot change status from {current.status} to {target.value}",
                "INVALID_STATUS_TRANSITION",
            )

        logger.info(
            "Reservation status changed",
            reservation_id=str(reservation_id),
            kind=config.model.kind.value,
            to_status=target.value,
            actor=actor,
        )

        guest_name = reservation.guest_name
        if target is ReservationStatus.CONFIRMED:
            await self.notifier.send_confirmation(reservation)
            if config.model.kind is ReservationKind.RESTAURANT:
                await self._assign_table(reservation_id, guest_name, reservation.no_of_diners, actor)
        elif target is ReservationStatus.CANCELLED:
            await self._move_tables(reservation_id, TableStatus.AVAILABLE, "Reservation cancelled", actor)
        elif target is ReservationStatus.SEATED:
            await self._move_tables(reservation_id, TableStatus.OCCUPIED, None, actor)
        elif target is ReservationStatus.NO_SHOW:
            await self._move_tables(reservation_id, TableStatus.AVAILABLE, "Guest did not show", actor)

        await self.events.emit(
            "reservationStatusChanged",
            {"id": str(reservation_id), "status": target.value},
        )
        return await self.get(kind, reservation_id)

    async def update(self, kind, reservation_id: UUID, patch):
        """Patch fields and re-validate the merged record; no side effects"""
        config = kind_config(kind)
        changes = parse_payload(config.update_schema, patch).model_dump(exclude_unset=True)
        reservation = await self.get(kind, reservation_id)

        merged = config.response_schema.model_validate(reservation).model_dump()
        if "rooms" in changes:
            merged.pop("total_adults", None)
            merged.pop("total_children", None)
        merged.update(changes)
        validated = parse_payload(config.create_schema, merged)

        async with transaction(self.db):
            for field, value in validated.to_columns().items():
                setattr(reservation, field, value)
            reservation.updated_at = utcnow()

        logger.info("Reservation updated", reservation_id=str(reservation_id), fields=sorted(changes))
        await self.events.emit("reservationUpdated", reservation_payload(reservation))
        return reservation

    async def delete(self, kind, reservation_id: UUID, actor: Optional[str] = None) -> None:
        """Remove the record and free any table still holding it"""
        config = kind_config(kind)
        reservation = await self.get(kind, reservation_id)

        async with transaction(self.db):
            await self.db.delete(reservation)

        logger.info("Reservation deleted", reservation_id=str(reservation_id), kind=config.model.kind.value)
        await self._move_tables(reservation_id, TableStatus.AVAILABLE, "Reservation deleted", actor)
        await self.events.emit(
            "reservationDeleted",
            {"id": str(reservation_id), "typeOfReservation": config.model.kind.value},
        )

    @staticmethod
    def _parse_status(config: KindConfig, value) -> ReservationStatus:
        try:
            status = ReservationStatus(value)
        except ValueError:
            status = None
        if status is None or status not in config.statuses:
            allowed = ", ".join(sorted(s.value for s in config.statuses))
            raise ValidationError(f"Invalid status: {value}. Allowed: {allowed}")
        return status

    async def _assign_table(
        self,
        reservation_id: UUID,
        guest_name: str,
        seats: int,
        actor: Optional[str],
    ) -> None:
        """Reserve the first best-fit table that can still be claimed"""
        try:
            candidates = [(t.id, t.table_number) for t in await self.registry.find_best_fit(seats)]
            if not candidates:
                logger.warning(
                    "No table available for reservation",
                    reservation_id=str(reservation_id),
                    required_seats=seats,
                )
                return

            context = TransitionContext(
                reservation_id=reservation_id,
                reservation_type=ReservationKind.RESTAURANT,
                guest_name=guest_name,
                assigned_by=actor,
            )
            for table_id, table_number in candidates:
                try:
                    await self.registry.transition(table_id, TableStatus.RESERVED, context)
                except ConflictError:
                    logger.info("Best-fit table taken, trying next", table_number=table_number)
                    continue
                logger.info(
                    "Table assigned",
                    reservation_id=str(reservation_id),
                    table_id=str(table_id),
                    table_number=table_number,
                )
                return

            logger.warning(
                "Every best-fit table was claimed concurrently",
                reservation_id=str(reservation_id),
                required_seats=seats,
            )
        except AppError as e:
            logger.error("Table assignment failed", reservation_id=str(reservation_id), error=e.message)

    async def _move_tables(
        self,
        reservation_id: UUID,
        target: TableStatus,
        notes: Optional[str],
        actor: Optional[str],
    ) -> None:
        try:
            tables = [(t.id, t.table_number) for t in await self.registry.tables_for_reservation(reservation_id)]
        except AppError as e:
            logger.error("Table lookup failed", reservation_id=str(reservation_id), error=e.message)
            return

        context = TransitionContext(notes=notes, assigned_by=actor)
        for table_id, table_number in tables:
            try:
                await self.registry.transition(table_id, target, context)
            except AppError as e:
                logger.error(
                    "Table transition failed",
                    reservation_id=str(reservation_id),
                    table_number=table_number,
                    to_status=target.value,
                    error=e.message,
                )
