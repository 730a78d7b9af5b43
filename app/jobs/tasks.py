"""Background job tasks: guest email delivery"""

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
import structlog

from app.jobs.celery_app import celery_app
from app.config import settings

logger = structlog.get_logger()


def _summary_items(booking: dict) -> str:
    rows = [("Booking ID", booking.get("id"))]
    rows.extend((label, value) for label, value in booking.get("details", []))
    return "".join(
        f"<li><b>{escape(str(label))}:</b> {escape(str(value))}</li>"
        for label, value in rows
        if value not in (None, "")
    )


def render_acknowledgement(booking: dict) -> tuple:
    """Subject and HTML body for a received booking"""
    kind = booking.get("kind", "Reservation")
    subject = f"We Received Your {kind} Booking Request"
    body = f"""
    <div style="font-family: Arial, sans-serif;">
      <h2>{escape(settings.venue_name)}</h2>
      <p>Dear {escape(booking.get("guest_name") or "Guest")},</p>
      <p>Thank you for choosing <b>{escape(settings.venue_name)}</b>. We have <b>received</b>
      your <b>{escape(kind)}</b> booking request.</p>
      <p>Our team will review your request shortly. A final confirmation email
      will be sent once your booking is approved.</p>
      <h3>Booking Summary</h3>
      <ul>{_summary_items(booking)}</ul>
      <p>Warm regards,<br/><b>Team {escape(settings.venue_name)}</b><br/>{escape(settings.venue_contact)}</p>
    </div>
    """
    return subject, body


def render_confirmation(booking: dict) -> tuple:
    """Subject and HTML body for a confirmed booking"""
    kind = booking.get("kind", "Reservation")
    subject = f"Your {kind} Booking is Confirmed"
    body = f"""
    <div style="font-family: Arial, sans-serif;">
      <h2>{escape(settings.venue_name)}</h2>
      <p>Dear {escape(booking.get("guest_name") or "Guest")},</p>
      <p>We are delighted to confirm your <b>{escape(kind)}</b> booking.</p>
      <h3>Booking Details</h3>
      <ul>{_summary_items(booking)}</ul>
      <p>We look forward to welcoming you.</p>
      <p>Warm regards,<br/><b>Team {escape(settings.venue_name)}</b><br/>{escape(settings.venue_contact)}</p>
    </div>
    """
    return subject, body


def send_email(recipient: str, subject: str, html: str) -> bool:
    """Deliver one HTML email over SMTP"""
    if not settings.smtp_host:
        logger.warning("SMTP not configured, skipping email", to=recipient, subject=subject)
        return False

    sender = settings.smtp_sender or settings.smtp_user
    msg = MIMEMultipart()
    msg["From"] = sender
    msg["To"] = recipient
    msg["Subject"] = subject
    msg.attach(MIMEText(html, "html", "utf-8"))

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as server:
        if settings.smtp_use_tls:
            server.starttls()
        if settings.smtp_user:
            server.login(settings.smtp_user, settings.smtp_password)
        server.send_message(msg)

    logger.info("Email sent", to=recipient, subject=subject)
    return True


@celery_app.task(name="send_acknowledgement_email")
def send_acknowledgement_email(booking: dict):
    """Tell the guest their booking request was received"""
    logger.info("Sending acknowledgement email", booking_id=booking.get("id"), kind=booking.get("kind"))
    subject, body = render_acknowledgement(booking)
    return send_email(booking["guest_email"], subject, body)


@celery_app.task(name="send_confirmation_email")
def send_confirmation_email(booking: dict):
    """Tell the guest their booking was confirmed"""
    logger.info("Sending confirmation email", booking_id=booking.get("id"), kind=booking.get("kind"))
    subject, body = render_confirmation(booking)
    return send_email(booking["guest_email"], subject, body)
