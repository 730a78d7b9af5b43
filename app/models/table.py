"""Physical seating tables and their assignment state"""

import enum
import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON, Index
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base, utcnow


class TableStatus(str, enum.Enum):
    """Table lifecycle states"""
    AVAILABLE = "available"
    RESERVED = "reserved"
    OCCUPIED = "occupied"
    DIRTY = "dirty"
    MAINTENANCE = "maintenance"
    OUT_OF_SERVICE = "out_of_service"


class TableSection(str, enum.Enum):
    RESTAURANT = "restaurant"
    BAR = "bar"
    OUTDOOR = "outdoor"
    PRIVATE = "private"
    PATIO = "patio"
    ROOFTOP = "rooftop"
    VIP = "vip"


class TableFeature(str, enum.Enum):
    WHEELCHAIR = "wheelchair"
    HIGHCHAIR = "highchair"
    WINDOW = "window"
    BOOTH = "booth"
    PRIVATE = "private"
    TV = "tv"
    FIREPLACE = "fireplace"
    CORNER = "corner"
    NEAR_KITCHEN = "near_kitchen"
    ROMANTIC = "romantic"
    FAMILY_FRIENDLY = "family_friendly"


# States in which a table holds a reservation
BUSY_STATUSES = (TableStatus.RESERVED.value, TableStatus.OCCUPIED.value)


class Table(Base):
    """Restaurant table"""
    __tablename__ = "tables"
    __table_args__ = (
        Index("ix_tables_section_status", "section", "status"),
        Index("ix_tables_status_capacity", "status", "capacity"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    table_number = Column(String(50), unique=True, nullable=False, index=True)

    section = Column(String(20), nullable=False, default=TableSection.RESTAURANT.value)
    capacity = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=TableStatus.AVAILABLE.value)
    features = Column(JSON, nullable=False, default=list)  # ["window", "booth", ...]
    priority = Column(Integer, nullable=False, default=5)
    is_active = Column(Boolean, nullable=False, default=True)

    # Location
    floor = Column(Integer, nullable=False, default=1)
    coordinates = Column(JSON)  # {"x": 0, "y": 0}
    location_description = Column(String(200))
    special_notes = Column(String(500))

    # Current assignment; all null while no reservation is held
    current_reservation_id = Column(UUID(as_uuid=True), index=True)
    current_reservation_type = Column(String(20))
    current_guest_name = Column(String(255))
    current_assigned_by = Column(String(255))
    assigned_to = Column(String(255))

    last_assigned_at = Column(DateTime(timezone=True))
    last_occupied_at = Column(DateTime(timezone=True))
    last_freed_at = Column(DateTime(timezone=True))

    # Append-only; entries hold ISO-8601 timestamps
    assignment_history = Column(JSON, nullable=False, default=list)

    # Optimistic concurrency token, bumped by every write
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def current_reservation(self) -> dict:
        return {
            "reservation_id": self.current_reservation_id,
            "reservation_type": self.current_reservation_type,
            "guest_name": self.current_guest_name,
            "assigned_by": self.current_assigned_by,
        }

    @property
    def has_assignment(self) -> bool:
        return self.current_reservation_id is not None

    @property
    def is_available(self) -> bool:
        return self.status == TableStatus.AVAILABLE.value and bool(self.is_active)
