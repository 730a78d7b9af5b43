"""Database models"""

from app.models.table import Table, TableStatus, TableSection, TableFeature
from app.models.reservation import (
    ReservationKind,
    ReservationStatus,
    AccommodationReservation,
    RestaurantReservation,
    MeetingReservation,
)

__all__ = [
    "Table",
    "TableStatus",
    "TableSection",
    "TableFeature",
    "ReservationKind",
    "ReservationStatus",
    "AccommodationReservation",
    "RestaurantReservation",
    "MeetingReservation",
]
