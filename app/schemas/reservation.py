"""Reservation schemas"""

import datetime as dt
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import ConfigDict, Field, model_validator

from app.schemas.base import CamelModel


TimeSlot = Literal["Breakfast", "Lunch", "Dinner"]
SeatingArea = Literal["restaurant", "bar", "outdoor", "private"]
EventType = Literal["Marriage", "Reception", "Birthday", "Office Meeting", "Other"]


class GuestInfo(CamelModel):
    """Guest contact details"""
    name: str = Field(min_length=1, max_length=255)
    phone_number: str = Field(min_length=1, max_length=30)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)


class RoomOccupancy(CamelModel):
    adults: int = Field(ge=1, le=4)
    children: int = Field(0, ge=0, le=4)


class ReservationCreateBase(CamelModel):
    """Fields shared by every reservation request"""
    guest_info: GuestInfo
    special_requests: str = ""
    additional_details: str = ""
    agree_to_tnc: bool = Field(False, alias="agreeToTnC")

    def to_columns(self) -> Dict[str, Any]:
        """Flatten into model column values"""
        columns = self.model_dump(exclude={"guest_info"})
        columns.update(
            guest_name=self.guest_info.name,
            guest_phone=self.guest_info.phone_number,
            guest_email=self.guest_info.email,
        )
        return columns


class AccommodationCreate(ReservationCreateBase):
    """Create accommodation reservation request"""
    arrival_date: dt.date
    departure_date: dt.date
    check_in_time: str = "12:00"
    check_out_time: str = "11:00"
    rooms: List[RoomOccupancy] = Field(min_length=1)
    total_adults: Optional[int] = Field(None, ge=1)
    total_children: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_stay(self):
        if self.departure_date <= self.arrival_date:
            raise ValueError("departureDate must be after arrivalDate")
        if self.total_adults is None:
            self.total_adults = sum(room.adults for room in self.rooms)
        if self.total_children is None:
            self.total_children = sum(room.children for room in self.rooms)
        return self

    def to_columns(self) -> Dict[str, Any]:
        columns = super().to_columns()
        columns["nights"] = (self.departure_date - self.arrival_date).days
        return columns


class RestaurantCreate(ReservationCreateBase):
    """Create restaurant reservation request"""
    date: dt.date
    time_slot: TimeSlot
    no_of_diners: int = Field(ge=1, le=100)
    seating_area: SeatingArea = "restaurant"


class MeetingCreate(ReservationCreateBase):
    """Create meeting/wedding reservation request"""
    event_type: EventType
    reservation_date: dt.date
    reservation_end_date: dt.date
    number_of_rooms: Optional[int] = Field(None, ge=0)
    number_of_guests: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_window(self):
        if self.reservation_end_date < self.reservation_date:
            raise ValueError("reservationEndDate must not be before reservationDate")
        return self


class ReservationUpdateBase(CamelModel):
    """Partial update; status is only changed through the status endpoint"""
    model_config = ConfigDict(extra="forbid")

    guest_info: Optional[GuestInfo] = None
    special_requests: Optional[str] = None
    additional_details: Optional[str] = None
    agree_to_tnc: Optional[bool] = Field(None, alias="agreeToTnC")


class AccommodationUpdate(ReservationUpdateBase):
    arrival_date: Optional[dt.date] = None
    departure_date: Optional[dt.date] = None
    check_in_time: Optional[str] = None
    check_out_time: Optional[str] = None
    rooms: Optional[List[RoomOccupancy]] = None
    total_adults: Optional[int] = None
    total_children: Optional[int] = None


class RestaurantUpdate(ReservationUpdateBase):
    date: Optional[dt.date] = None
    time_slot: Optional[TimeSlot] = None
    no_of_diners: Optional[int] = None
    seating_area: Optional[SeatingArea] = None


class MeetingUpdate(ReservationUpdateBase):
    event_type: Optional[EventType] = None
    reservation_date: Optional[dt.date] = None
    reservation_end_date: Optional[dt.date] = None
    number_of_rooms: Optional[int] = None
    number_of_guests: Optional[int] = None


class ReservationStatusUpdate(CamelModel):
    """Status transition request"""
    status: str = Field(min_length=1)


class ReservationResponseBase(CamelModel):
    id: UUID
    type_of_reservation: str
    guest_info: GuestInfo
    status: str
    special_requests: Optional[str] = None
    additional_details: Optional[str] = None
    agree_to_tnc: Optional[bool] = Field(None, alias="agreeToTnC")
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


class AccommodationResponse(ReservationResponseBase):
    arrival_date: dt.date
    departure_date: dt.date
    check_in_time: Optional[str] = None
    check_out_time: Optional[str] = None
    nights: int
    rooms: List[RoomOccupancy]
    total_adults: int
    total_children: int


class RestaurantResponse(ReservationResponseBase):
    date: dt.date
    time_slot: str
    no_of_diners: int
    seating_area: Optional[str] = None


class MeetingResponse(ReservationResponseBase):
    event_type: str
    reservation_date: dt.date
    reservation_end_date: dt.date
    number_of_rooms: Optional[int] = None
    number_of_guests: Optional[int] = None

