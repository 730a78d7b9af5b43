"""Reservation models: accommodation, restaurant and meeting/wedding bookings"""

import enum
import uuid
from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, JSON, Text
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base, utcnow


class ReservationKind(str, enum.Enum):
    """Discriminator selecting the reservation variant"""
    ACCOMMODATION = "accommodation"
    RESTAURANT = "restaurant"
    MEETING = "meeting"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class ReservationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    SEATED = "seated"  # restaurant only
    NO_SHOW = "no-show"  # restaurant only


class ReservationMixin:
    """Columns shared by every reservation kind"""

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Guest information
    guest_name = Column(String(255), nullable=False, index=True)
    guest_phone = Column(String(30), nullable=False)
    guest_email = Column(String(255), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=ReservationStatus.PENDING.value, index=True)

    special_requests = Column(Text, default="")
    additional_details = Column(Text, default="")
    agree_to_tnc = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def type_of_reservation(self) -> str:
        return self.kind.value

    @property
    def guest_info(self) -> dict:
        return {
            "name": self.guest_name,
            "phone_number": self.guest_phone,
            "email": self.guest_email,
        }


class AccommodationReservation(ReservationMixin, Base):
    """Room stay booking"""
    __tablename__ = "accommodation_reservations"

    kind = ReservationKind.ACCOMMODATION

    arrival_date = Column(Date, nullable=False, index=True)
    departure_date = Column(Date, nullable=False)
    check_in_time = Column(String(10), default="12:00")
    check_out_time = Column(String(10), default="11:00")
    nights = Column(Integer, nullable=False)
    rooms = Column(JSON, nullable=False)  # [{"adults": 2, "children": 0}, ...]
    total_adults = Column(Integer, nullable=False)
    total_children = Column(Integer, nullable=False, default=0)


class RestaurantReservation(ReservationMixin, Base):
    """Dining booking"""
    __tablename__ = "restaurant_reservations"

    kind = ReservationKind.RESTAURANT

    date = Column(Date, nullable=False, index=True)
    time_slot = Column(String(20), nullable=False)  # Breakfast, Lunch, Dinner
    no_of_diners = Column(Integer, nullable=False)
    seating_area = Column(String(20), default="restaurant")


class MeetingReservation(ReservationMixin, Base):
    """Meeting, wedding and event booking"""
    __tablename__ = "meeting_reservations"

    kind = ReservationKind.MEETING

    event_type = Column(String(30), nullable=False)  # Marriage, Reception, Birthday, Office Meeting, Other
    reservation_date = Column(Date, nullable=False, index=True)
    reservation_end_date = Column(Date, nullable=False)
    number_of_rooms = Column(Integer)
    number_of_guests = Column(Integer)
