"""Table management API endpoints"""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.api.auth import require_admin
from app.api.deps import get_table_registry
from app.exceptions import ValidationError
from app.models.table import TableFeature, TableSection, TableStatus
from app.schemas.auth import Actor
from app.schemas.table import (
    AssignmentRecord,
    TableCreate,
    TableHistoryResponse,
    TableListResponse,
    TableResponse,
    TableStatusUpdate,
    TableTransferRequest,
    TableTransferResponse,
    TableUpdate,
)
from app.services.table_registry import TableRegistry

router = APIRouter()


@router.post("", response_model=TableResponse, status_code=201)
async def create_table(
    table_data: TableCreate,
    actor: Actor = Depends(require_admin),
    registry: TableRegistry = Depends(get_table_registry),
):
    """Create a new table"""
    return await registry.create(table_data)


@router.get("", response_model=TableListResponse)
async def list_tables(
    section: Optional[TableSection] = None,
    status: Optional[TableStatus] = None,
    capacity: Optional[int] = Query(None, ge=1),
    actor: Actor = Depends(require_admin),
    registry: TableRegistry = Depends(get_table_registry),
):
    """List tables ordered by section and table number"""
    tables = await registry.list(
        section=section.value if section else None,
        status=status.value if status else None,
        capacity=capacity,
    )
    return TableListResponse(count=len(tables), items=tables)


@router.get("/available", response_model=TableListResponse)
async def list_available_tables(
    capacity: Optional[int] = Query(None, ge=1),
    section: Optional[TableSection] = None,
    features: Optional[str] = Query(None, description="Comma-separated feature tags"),
    date: Optional[date] = None,
    time: Optional[str] = None,
    registry: TableRegistry = Depends(get_table_registry),
):
    """
    Tables a guest could be seated at right now.

    `date` and `time` are accepted for client compatibility; availability
    is the table's current status, not a time-slot calendar.
    """
    wanted: List[str] = []
    for tag in (features or "").split(","):
        tag = tag.strip()
        if not tag:
            continue
        try:
            wanted.append(TableFeature(tag).value)
        except ValueError:
            raise ValidationError(f"Unknown table feature: {tag}")

    tables = await registry.list_available(
        min_capacity=capacity,
        section=section.value if section else None,
        features=wanted,
    )
    return TableListResponse(count=len(tables), items=tables)


@router.get("/{table_id}", response_model=TableResponse)
async def get_table(
    table_id: UUID,
    actor: Actor = Depends(require_admin),
    registry: TableRegistry = Depends(get_table_registry),
):
    """Get table details"""
    return await registry.get(table_id)


@router.get("/{table_id}/history", response_model=TableHistoryResponse)
async def get_table_history(
    table_id: UUID,
    actor: Actor = Depends(require_admin),
    registry: TableRegistry = Depends(get_table_registry),
):
    """Closed assignments, oldest first"""
    table = await registry.get(table_id)
    entries = await registry.history(table_id)
    return TableHistoryResponse(
        table_id=table.id,
        table_number=table.table_number,
        items=[AssignmentRecord.model_validate(entry) for entry in entries],
    )


@router.put("/{table_id}", response_model=TableResponse)
async def update_table(
    table_id: UUID,
    table_data: TableUpdate,
    actor: Actor = Depends(require_admin),
    registry: TableRegistry = Depends(get_table_registry),
):
    """Update table metadata; a status in the body goes through the state machine"""
    if "status" in table_data.model_fields_set and table_data.assigned_by is None:
        table_data.assigned_by = actor.id
    return await registry.update_metadata(table_id, table_data)


@router.put("/{table_id}/status", response_model=TableResponse)
async def update_table_status(
    table_id: UUID,
    status_data: TableStatusUpdate,
    actor: Actor = Depends(require_admin),
    registry: TableRegistry = Depends(get_table_registry),
):
    """Transition a table to a new status"""
    if status_data.assigned_by is None:
        status_data.assigned_by = actor.id
    return await registry.transition(table_id, status_data.status, status_data)


@router.put("/{table_id}/transfer", response_model=TableTransferResponse)
async def transfer_table(
    table_id: UUID,
    transfer_data: TableTransferRequest,
    actor: Actor = Depends(require_admin),
    registry: TableRegistry = Depends(get_table_registry),
):
    """Move the table's reservation to another free table"""
    moved = await registry.transfer(
        table_id,
        transfer_data.new_table_id,
        reason=transfer_data.reason,
        assigned_by=actor.id,
    )
    return TableTransferResponse(**moved)


@router.delete("/{table_id}")
async def delete_table(
    table_id: UUID,
    actor: Actor = Depends(require_admin),
    registry: TableRegistry = Depends(get_table_registry),
):
    """Delete a table that holds no reservation"""
    await registry.delete(table_id)
    return {"success": True, "message": "Table deleted"}
