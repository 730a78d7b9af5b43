"""Guest notifications for reservations"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from starlette.concurrency import run_in_threadpool
import structlog

from app.exceptions import NotificationError
from app.models.reservation import ReservationKind

logger = structlog.get_logger()


def _details(reservation) -> List[Tuple[str, Any]]:
    kind = reservation.kind
    if kind is ReservationKind.ACCOMMODATION:
        return [
            ("Arrival", reservation.arrival_date.isoformat()),
            ("Departure", reservation.departure_date.isoformat()),
            ("Nights", reservation.nights),
            ("Rooms", len(reservation.rooms or [])),
            ("Guests", f"{reservation.total_adults} adults, {reservation.total_children} children"),
        ]
    if kind is ReservationKind.RESTAURANT:
        return [
            ("Date", reservation.date.isoformat()),
            ("Time", reservation.time_slot),
            ("Diners", reservation.no_of_diners),
        ]
    return [
        ("Event", reservation.event_type),
        ("From", reservation.reservation_date.isoformat()),
        ("To", reservation.reservation_end_date.isoformat()),
        ("Guests", reservation.number_of_guests),
    ]


def booking_payload(reservation) -> Dict[str, Any]:
    """JSON-safe summary handed to the email tasks"""
    return {
        "id": str(reservation.id),
        "kind": reservation.kind.label,
        "guest_name": reservation.guest_name,
        "guest_email": reservation.guest_email,
        "details": _details(reservation),
    }


class Notifier:
    """
    Queues acknowledgement and confirmation emails.

    Every failure is logged as a NotificationError and reported as False;
    nothing propagates to the caller.
    """

    def __init__(
        self,
        acknowledgement_task: Optional[Callable] = None,
        confirmation_task: Optional[Callable] = None,
    ):
        if acknowledgement_task is None or confirmation_task is None:
            from app.jobs.tasks import send_acknowledgement_email, send_confirmation_email
            acknowledgement_task = acknowledgement_task or send_acknowledgement_email
            confirmation_task = confirmation_task or send_confirmation_email
        self.acknowledgement_task = acknowledgement_task
        self.confirmation_task = confirmation_task

    async def send_acknowledgement(self, reservation) -> bool:
        return await self._enqueue(self.acknowledgement_task, reservation, "acknowledgement")

    async def send_confirmation(self, reservation) -> bool:
        return await self._enqueue(self.confirmation_task, reservation, "confirmation")

    async def _enqueue(self, task, reservation, label: str) -> bool:
        try:
            payload = booking_payload(reservation)
            await run_in_threadpool(task.delay, payload)
        except Exception as e:
            error = NotificationError(f"Failed to queue {label} email: {e}")
            logger.error(
                "Notification failed",
                notification=label,
                reservation_id=str(reservation.id),
                error=error.message,
            )
            return False

        logger.info("Notification queued", notification=label, reservation_id=str(reservation.id))
        return True
