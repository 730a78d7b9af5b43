#!/usr/bin/env python3
"""
Seed script to create a demo floor plan and a sample booking
"""

import asyncio

from sqlalchemy import select


DEMO_TABLES = [
    {"tableNumber": "T1", "section": "restaurant", "capacity": 2, "features": ["window", "romantic"]},
    {"tableNumber": "T2", "section": "restaurant", "capacity": 4, "features": ["window"]},
    {"tableNumber": "T3", "section": "restaurant", "capacity": 4, "features": ["booth"]},
    {"tableNumber": "T4", "section": "restaurant", "capacity": 6, "features": ["family_friendly", "highchair"]},
    {"tableNumber": "T5", "section": "restaurant", "capacity": 8, "features": ["corner"]},
    {"tableNumber": "B1", "section": "bar", "capacity": 2, "features": ["tv"]},
    {"tableNumber": "P1", "section": "patio", "capacity": 4, "features": ["wheelchair"]},
    {"tableNumber": "V1", "section": "vip", "capacity": 10, "features": ["private", "fireplace"], "priority": 9},
]


async def seed_demo_data():
    """Seed demo data for development"""
    from app.api.auth import create_access_token
    from app.database import SessionLocal, engine, Base
    from app.events import EventEmitter, LogEventSink
    from app.models.table import Table
    from app.services.reservation_manager import ReservationManager
    from app.services.table_registry import TableRegistry

    class NoopNotifier:
        async def send_acknowledgement(self, reservation):
            return True

        async def send_confirmation(self, reservation):
            return True

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as db:
        # Check if demo floor plan already exists
        existing = await db.scalar(select(Table.id).where(Table.table_number == "T1"))
        if existing:
            print("Demo data already exists. Skipping...")
            return

        events = EventEmitter(LogEventSink())
        registry = TableRegistry(db, events)
        manager = ReservationManager(db, registry, NoopNotifier(), events)

        print("Creating demo tables...")
        for fields in DEMO_TABLES:
            table = await registry.create(fields)
            print(f"Created table {table.table_number} ({table.section}, seats {table.capacity})")

        booking = await manager.create("restaurant", {
            "guestInfo": {
                "name": "Demo Guest",
                "phoneNumber": "+15551234567",
                "email": "guest@example.com",
            },
            "date": "2030-01-15",
            "timeSlot": "Dinner",
            "noOfDiners": 3,
            "agreeToTnC": True,
        })
        await manager.update_status("restaurant", booking.id, "confirmed", actor="seed")
        assigned = await registry.tables_for_reservation(booking.id)

        print(f"""
Demo data created successfully!

Tables: {len(DEMO_TABLES)} created
Booking: {booking.id} (confirmed, table {assigned[0].table_number if assigned else "unassigned"})

Tokens (valid for the configured expiry):
  Admin: {create_access_token("demo-admin", "admin", name="Demo Admin")}
  Guest: {create_access_token("demo-guest", "user")}
""")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
