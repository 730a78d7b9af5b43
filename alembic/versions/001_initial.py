"""Initial migration

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _reservation_columns():
    """Columns shared by every reservation table"""
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('guest_name', sa.String(255), nullable=False, index=True),
        sa.Column('guest_phone', sa.String(30), nullable=False),
        sa.Column('guest_email', sa.String(255), nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending', index=True),
        sa.Column('special_requests', sa.Text(), server_default=''),
        sa.Column('additional_details', sa.Text(), server_default=''),
        sa.Column('agree_to_tnc', sa.Boolean(), server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Create tables table
    op.create_table(
        'tables',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('table_number', sa.String(50), nullable=False, unique=True, index=True),
        sa.Column('section', sa.String(20), nullable=False, server_default='restaurant'),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='available'),
        sa.Column('features', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('floor', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('coordinates', sa.JSON()),
        sa.Column('location_description', sa.String(200)),
        sa.Column('special_notes', sa.String(500)),
        sa.Column('current_reservation_id', postgresql.UUID(as_uuid=True), index=True),
        sa.Column('current_reservation_type', sa.String(20)),
        sa.Column('current_guest_name', sa.String(255)),
        sa.Column('current_assigned_by', sa.String(255)),
        sa.Column('assigned_to', sa.String(255)),
        sa.Column('last_assigned_at', sa.DateTime(timezone=True)),
        sa.Column('last_occupied_at', sa.DateTime(timezone=True)),
        sa.Column('last_freed_at', sa.DateTime(timezone=True)),
        sa.Column('assignment_history', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('capacity BETWEEN 1 AND 50', name='ck_tables_capacity'),
        sa.CheckConstraint(
            "status IN ('available', 'reserved', 'occupied', 'dirty', 'maintenance', 'out_of_service')",
            name='ck_tables_status',
        ),
    )
    op.create_index('ix_tables_section_status', 'tables', ['section', 'status'])
    op.create_index('ix_tables_status_capacity', 'tables', ['status', 'capacity'])

    # Create accommodation_reservations table
    op.create_table(
        'accommodation_reservations',
        *_reservation_columns(),
        sa.Column('arrival_date', sa.Date(), nullable=False, index=True),
        sa.Column('departure_date', sa.Date(), nullable=False),
        sa.Column('check_in_time', sa.String(10), server_default='12:00'),
        sa.Column('check_out_time', sa.String(10), server_default='11:00'),
        sa.Column('nights', sa.Integer(), nullable=False),
        sa.Column('rooms', sa.JSON(), nullable=False),
        sa.Column('total_adults', sa.Integer(), nullable=False),
        sa.Column('total_children', sa.Integer(), nullable=False, server_default='0'),
    )

    # Create restaurant_reservations table
    op.create_table(
        'restaurant_reservations',
        *_reservation_columns(),
        sa.Column('date', sa.Date(), nullable=False, index=True),
        sa.Column('time_slot', sa.String(20), nullable=False),
        sa.Column('no_of_diners', sa.Integer(), nullable=False),
        sa.Column('seating_area', sa.String(20), server_default='restaurant'),
    )

    # Create meeting_reservations table
    op.create_table(
        'meeting_reservations',
        *_reservation_columns(),
        sa.Column('event_type', sa.String(30), nullable=False),
        sa.Column('reservation_date', sa.Date(), nullable=False, index=True),
        sa.Column('reservation_end_date', sa.Date(), nullable=False),
        sa.Column('number_of_rooms', sa.Integer()),
        sa.Column('number_of_guests', sa.Integer()),
    )


def downgrade() -> None:
    op.drop_table('meeting_reservations')
    op.drop_table('restaurant_reservations')
    op.drop_table('accommodation_reservations')
    op.drop_index('ix_tables_status_capacity', table_name='tables')
    op.drop_index('ix_tables_section_status', table_name='tables')
    op.drop_table('tables')
