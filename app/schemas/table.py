"""Table schemas"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID

from pydantic import ConfigDict, Field, field_validator

from app.models.reservation import ReservationKind
from app.models.table import TableStatus, TableSection, TableFeature
from app.schemas.base import CamelModel


class Coordinates(CamelModel):
    """Floor-plan position"""
    x: float = Field(ge=0)
    y: float = Field(ge=0)


def _unique_features(features: Optional[List[TableFeature]]) -> Optional[List[TableFeature]]:
    if features is None:
        return None
    return list(dict.fromkeys(features))


class TableCreate(CamelModel):
    """Create table request"""
    table_number: str = Field(min_length=1, max_length=50)
    section: TableSection = TableSection.RESTAURANT
    capacity: int = Field(ge=1, le=50)
    features: List[TableFeature] = []
    priority: int = Field(5, ge=1, le=10)
    is_active: bool = True
    floor: int = Field(1, ge=1)
    coordinates: Optional[Coordinates] = None
    location_description: Optional[str] = Field(None, max_length=200)
    special_notes: Optional[str] = Field(None, max_length=500)

    @field_validator("table_number")
    @classmethod
    def strip_table_number(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("tableNumber must not be empty")
        return value

    @field_validator("features")
    @classmethod
    def dedupe_features(cls, value):
        return _unique_features(value)


class TransitionContext(CamelModel):
    """Reservation details carried by a status transition"""
    reservation_id: Optional[UUID] = None
    reservation_type: ReservationKind = ReservationKind.RESTAURANT
    guest_name: Optional[str] = None
    assigned_by: Optional[str] = None
    notes: Optional[str] = None
    assigned_at: Optional[datetime] = None


class TableUpdate(CamelModel):
    """
    Metadata patch.

    A `status` here is not written directly: it is handed to the
    transition state machine together with the reservation fields.
    """
    model_config = ConfigDict(extra="forbid")

    table_number: Optional[str] = Field(None, max_length=50)
    section: Optional[TableSection] = None
    capacity: Optional[int] = Field(None, ge=1, le=50)
    features: Optional[List[TableFeature]] = None
    priority: Optional[int] = Field(None, ge=1, le=10)
    is_active: Optional[bool] = None
    floor: Optional[int] = Field(None, ge=1)
    coordinates: Optional[Coordinates] = None
    location_description: Optional[str] = Field(None, max_length=200)
    special_notes: Optional[str] = Field(None, max_length=500)

    status: Optional[TableStatus] = None
    reservation_id: Optional[UUID] = None
    reservation_type: Optional[ReservationKind] = None
    guest_name: Optional[str] = None
    assigned_by: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("features")
    @classmethod
    def dedupe_features(cls, value):
        return _unique_features(value)


class TableStatusUpdate(TransitionContext):
    """Status transition request"""
    status: TableStatus


class TableTransferRequest(CamelModel):
    """Move an active assignment to another table"""
    new_table_id: UUID
    reason: Optional[str] = Field(None, max_length=500)


class CurrentReservation(CamelModel):
    reservation_id: Optional[UUID] = None
    reservation_type: Optional[str] = None
    guest_name: Optional[str] = None
    assigned_by: Optional[str] = None


class AssignmentRecord(CamelModel):
    """One closed assignment"""
    reservation_id: Optional[UUID] = None
    reservation_type: Optional[str] = None
    guest_name: Optional[str] = None
    assigned_at: Optional[datetime] = None
    freed_at: Optional[datetime] = None
    assigned_by: Optional[str] = None
    notes: Optional[str] = None


class TableResponse(CamelModel):
    """Table response"""
    id: UUID
    table_number: str
    section: str
    capacity: int
    status: str
    features: List[str] = []
    priority: int
    is_active: bool
    floor: int
    coordinates: Optional[Coordinates] = None
    location_description: Optional[str] = None
    special_notes: Optional[str] = None
    current_reservation: CurrentReservation
    assigned_to: Optional[str] = None
    last_assigned_at: Optional[datetime] = None
    last_occupied_at: Optional[datetime] = None
    last_freed_at: Optional[datetime] = None
    assignment_history: List[AssignmentRecord] = []
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TableListResponse(CamelModel):
    count: int
    items: List[TableResponse]


class TableHistoryResponse(CamelModel):
    table_id: UUID
    table_number: str
    items: List[AssignmentRecord]


class TableTransferResponse(CamelModel):
    from_table: TableResponse
    to_table: TableResponse
