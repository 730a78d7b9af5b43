"""Pydantic schemas for request/response validation"""

from app.schemas.table import (
    Coordinates,
    TableCreate,
    TableUpdate,
    TableStatusUpdate,
    TableTransferRequest,
    TransitionContext,
    TableResponse,
    TableListResponse,
    TableHistoryResponse,
    TableTransferResponse,
    AssignmentRecord,
)
from app.schemas.reservation import (
    GuestInfo,
    AccommodationCreate,
    RestaurantCreate,
    MeetingCreate,
    AccommodationUpdate,
    RestaurantUpdate,
    MeetingUpdate,
    ReservationStatusUpdate,
    AccommodationResponse,
    RestaurantResponse,
    MeetingResponse,
)

__all__ = [
    "Coordinates",
    "TableCreate",
    "TableUpdate",
    "TableStatusUpdate",
    "TableTransferRequest",
    "TransitionContext",
    "TableResponse",
    "TableListResponse",
    "TableHistoryResponse",
    "TableTransferResponse",
    "AssignmentRecord",
    "GuestInfo",
    "AccommodationCreate",
    "RestaurantCreate",
    "MeetingCreate",
    "AccommodationUpdate",
    "RestaurantUpdate",
    "MeetingUpdate",
    "ReservationStatusUpdate",
    "AccommodationResponse",
    "RestaurantResponse",
    "MeetingResponse",
]
