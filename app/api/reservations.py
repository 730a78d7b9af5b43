"""Reservation management API endpoints"""

from datetime import date
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query

from app.api.auth import get_current_actor, require_admin
from app.api.deps import get_reservation_manager
from app.schemas.auth import Actor
from app.schemas.reservation import ReservationStatusUpdate
from app.services.reservation_manager import ReservationManager, reservation_payload

router = APIRouter()


@router.post("/{kind}", status_code=201)
async def create_reservation(
    kind: str,
    payload: Dict[str, Any] = Body(...),
    actor: Actor = Depends(get_current_actor),
    manager: ReservationManager = Depends(get_reservation_manager),
):
    """Create a reservation of the given kind; starts out pending"""
    reservation = await manager.create(kind, payload)
    return reservation_payload(reservation)


@router.get("/{kind}")
async def list_reservations(
    kind: str,
    status: Optional[str] = None,
    search: Optional[str] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    sort_by: str = Query("date_desc", alias="sortBy"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    actor: Actor = Depends(require_admin),
    manager: ReservationManager = Depends(get_reservation_manager),
):
    """List reservations with search, date range and pagination"""
    result = await manager.list(
        kind,
        status=status,
        search=search,
        start_date=start_date,
        end_date=end_date,
        sort_by=sort_by,
        page=page,
        page_size=page_size,
    )
    return {
        "items": [reservation_payload(r) for r in result["items"]],
        "total": result["total"],
        "page": result["page"],
        "pageSize": result["page_size"],
        "totalPages": result["total_pages"],
    }


@router.get("/{kind}/{reservation_id}")
async def get_reservation(
    kind: str,
    reservation_id: UUID,
    actor: Actor = Depends(require_admin),
    manager: ReservationManager = Depends(get_reservation_manager),
):
    """Get reservation details"""
    return reservation_payload(await manager.get(kind, reservation_id))


@router.put("/{kind}/{reservation_id}")
async def update_reservation(
    kind: str,
    reservation_id: UUID,
    payload: Dict[str, Any] = Body(...),
    actor: Actor = Depends(require_admin),
    manager: ReservationManager = Depends(get_reservation_manager),
):
    """Update reservation fields; use the status endpoint to change status"""
    reservation = await manager.update(kind, reservation_id, payload)
    return reservation_payload(reservation)


@router.put("/{kind}/{reservation_id}/status")
async def update_reservation_status(
    kind: str,
    reservation_id: UUID,
    status_data: ReservationStatusUpdate,
    actor: Actor = Depends(require_admin),
    manager: ReservationManager = Depends(get_reservation_manager),
):
    """Move a reservation to a new status, assigning or freeing tables"""
    reservation = await manager.update_status(kind, reservation_id, status_data.status, actor=actor.id)
    return reservation_payload(reservation)


@router.delete("/{kind}/{reservation_id}")
async def delete_reservation(
    kind: str,
    reservation_id: UUID,
    actor: Actor = Depends(require_admin),
    manager: ReservationManager = Depends(get_reservation_manager),
):
    """Delete a reservation and free any table it still holds"""
    await manager.delete(kind, reservation_id, actor=actor.id)
    return {"success": True, "message": "Deleted"}
