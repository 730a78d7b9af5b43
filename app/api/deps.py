"""Service dependencies built from the request's app state"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.events import EventEmitter
from app.notifications import Notifier
from app.services.reservation_manager import ReservationManager
from app.services.table_registry import TableRegistry


def get_events(request: Request) -> EventEmitter:
    return request.app.state.events


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


async def get_table_registry(
    db: AsyncSession = Depends(get_db),
    events: EventEmitter = Depends(get_events),
) -> TableRegistry:
    return TableRegistry(db, events)


async def get_reservation_manager(
    db: AsyncSession = Depends(get_db),
    registry: TableRegistry = Depends(get_table_registry),
    notifier: Notifier = Depends(get_notifier),
    events: EventEmitter = Depends(get_events),
) -> ReservationManager:
    return ReservationManager(db, registry, notifier, events)
