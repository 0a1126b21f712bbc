"""Initial bus booking schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create routes table
    op.create_table('routes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('origin', sa.String(length=100), nullable=False),
        sa.Column('destination', sa.String(length=100), nullable=False),
        sa.Column('operator_name', sa.String(length=255), nullable=False),
        sa.Column('distance_km', sa.Integer(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('distance_km >= 0', name='ck_route_distance_non_negative'),
        sa.CheckConstraint('duration_minutes >= 0', name='ck_route_duration_non_negative'),
        sa.CheckConstraint('origin <> destination', name='ck_route_distinct_endpoints'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('origin', 'destination', 'operator_name', name='uq_route_origin_destination_operator')
    )
    op.create_index(op.f('ix_routes_origin'), 'routes', ['origin'], unique=False)
    op.create_index(op.f('ix_routes_destination'), 'routes', ['destination'], unique=False)

    # Create schedules table
    op.create_table('schedules',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('route_id', sa.Uuid(), nullable=False),
        sa.Column('bus_number', sa.String(length=32), nullable=False),
        sa.Column('departure_time', sa.DateTime(), nullable=False),
        sa.Column('arrival_time', sa.DateTime(), nullable=False),
        sa.Column('base_price_amount', sa.Integer(), nullable=False),
        sa.Column('premium_price_amount', sa.Integer(), nullable=True),
        sa.Column('price_currency', sa.String(length=3), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('arrival_time > departure_time', name='ck_schedule_arrival_after_departure'),
        sa.CheckConstraint('base_price_amount >= 0', name='ck_schedule_base_price_non_negative'),
        sa.CheckConstraint('premium_price_amount IS NULL OR premium_price_amount >= 0', name='ck_schedule_premium_price_non_negative'),
        sa.CheckConstraint('length(price_currency) = 3', name='ck_schedule_price_currency_length'),
        sa.ForeignKeyConstraint(['route_id'], ['routes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_schedules_route_id'), 'schedules', ['route_id'], unique=False)
    op.create_index(op.f('ix_schedules_departure_time'), 'schedules', ['departure_time'], unique=False)
    op.create_index(op.f('ix_schedules_is_active'), 'schedules', ['is_active'], unique=False)

    # Create seats table
    op.create_table('seats',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('schedule_id', sa.Uuid(), nullable=False),
        sa.Column('seat_number', sa.String(length=8), nullable=False),
        sa.Column('seat_type', sa.String(length=16), nullable=False),
        sa.Column('price_amount', sa.Integer(), nullable=False),
        sa.CheckConstraint('price_amount >= 0', name='ck_seat_price_non_negative'),
        sa.ForeignKeyConstraint(['schedule_id'], ['schedules.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('schedule_id', 'seat_number', name='uq_seat_schedule_number')
    )
    op.create_index(op.f('ix_seats_schedule_id'), 'seats', ['schedule_id'], unique=False)

    # Create holds table
    op.create_table('holds',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('schedule_id', sa.Uuid(), nullable=False),
        sa.Column('session_id', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('length(session_id) > 0', name='ck_hold_session_id_not_empty'),
        sa.CheckConstraint('expires_at > created_at', name='ck_hold_expires_after_created'),
        sa.ForeignKeyConstraint(['schedule_id'], ['schedules.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('schedule_id', 'session_id', name='uq_hold_schedule_session')
    )
    op.create_index(op.f('ix_holds_schedule_id'), 'holds', ['schedule_id'], unique=False)
    op.create_index(op.f('ix_holds_session_id'), 'holds', ['session_id'], unique=False)
    op.create_index(op.f('ix_holds_expires_at'), 'holds', ['expires_at'], unique=False)

    # Create hold_seats table
    op.create_table('hold_seats',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('hold_id', sa.Uuid(), nullable=False),
        sa.Column('schedule_id', sa.Uuid(), nullable=False),
        sa.Column('seat_id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['hold_id'], ['holds.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['schedule_id'], ['schedules.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['seat_id'], ['seats.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('schedule_id', 'seat_id', name='uq_hold_seat_schedule_seat')
    )
    op.create_index(op.f('ix_hold_seats_hold_id'), 'hold_seats', ['hold_id'], unique=False)

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('schedule_id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('session_id', sa.String(length=128), nullable=False),
        sa.Column('passenger_name', sa.String(length=255), nullable=False),
        sa.Column('passenger_email', sa.String(length=255), nullable=False),
        sa.Column('passenger_phone', sa.String(length=32), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('payment_reference', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('total_amount >= 0', name='ck_booking_total_non_negative'),
        sa.CheckConstraint('length(code) > 0', name='ck_booking_code_not_empty'),
        sa.CheckConstraint('length(currency) = 3', name='ck_booking_currency_length'),
        sa.ForeignKeyConstraint(['schedule_id'], ['schedules.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_reference')
    )
    op.create_index(op.f('ix_bookings_code'), 'bookings', ['code'], unique=True)
    op.create_index(op.f('ix_bookings_schedule_id'), 'bookings', ['schedule_id'], unique=False)
    op.create_index(op.f('ix_bookings_session_id'), 'bookings', ['session_id'], unique=False)
    op.create_index(op.f('ix_bookings_passenger_email'), 'bookings', ['passenger_email'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)

    # Create booking_seats table
    op.create_table('booking_seats',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('schedule_id', sa.Uuid(), nullable=False),
        sa.Column('seat_id', sa.Uuid(), nullable=False),
        sa.Column('price_amount', sa.Integer(), nullable=False),
        sa.Column('passenger_name', sa.String(length=255), nullable=True),
        sa.Column('released_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('price_amount >= 0', name='ck_booking_seat_price_non_negative'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['schedule_id'], ['schedules.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['seat_id'], ['seats.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_seats_booking_id'), 'booking_seats', ['booking_id'], unique=False)
    # A seat belongs to at most one live booking
    op.create_index(
        'uq_booking_seat_live',
        'booking_seats',
        ['schedule_id', 'seat_id'],
        unique=True,
        postgresql_where=sa.text('released_at IS NULL'),
        sqlite_where=sa.text('released_at IS NULL'),
    )

    # Create idempotency_records table
    op.create_table('idempotency_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('operation', sa.String(length=100), nullable=False),
        sa.Column('request_body_hash', sa.String(length=64), nullable=False),
        sa.Column('response_status_code', sa.Integer(), nullable=False),
        sa.Column('response_body', sa.Text(), nullable=False),
        sa.Column('response_headers', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(idempotency_key) > 0', name='ck_idempotency_key_not_empty'),
        sa.CheckConstraint('length(request_body_hash) = 64', name='ck_idempotency_hash_length'),
        sa.CheckConstraint('response_status_code BETWEEN 100 AND 599', name='ck_idempotency_status_code_valid'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', 'operation', name='uq_idempotency_key_operation')
    )
    op.create_index(op.f('ix_idempotency_records_idempotency_key'), 'idempotency_records', ['idempotency_key'], unique=False)
    op.create_index(op.f('ix_idempotency_records_expires_at'), 'idempotency_records', ['expires_at'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('idempotency_records')
    op.drop_index('uq_booking_seat_live', table_name='booking_seats')
    op.drop_table('booking_seats')
    op.drop_table('bookings')
    op.drop_table('hold_seats')
    op.drop_table('holds')
    op.drop_table('seats')
    op.drop_table('schedules')
    op.drop_table('routes')
