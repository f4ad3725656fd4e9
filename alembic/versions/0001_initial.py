"""initial

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('buses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('bus_name', sa.String(length=255), nullable=False),
        sa.Column('bus_type', sa.String(length=64), nullable=True),
        sa.Column('from_city', sa.String(length=128), nullable=False),
        sa.Column('to_city', sa.String(length=128), nullable=False),
        sa.Column('journey_date', sa.Date(), nullable=False),
        sa.Column('departure_time', sa.String(length=16), nullable=True),
        sa.Column('arrival_time', sa.String(length=16), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total_seats', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_buses_from_city', 'buses', ['from_city'], unique=False)
    op.create_index('ix_buses_to_city', 'buses', ['to_city'], unique=False)
    op.create_index('ix_buses_journey_date', 'buses', ['journey_date'], unique=False)
    op.create_index('ix_bus_route_date', 'buses', ['from_city', 'to_city', 'journey_date'], unique=False)

    op.create_table('bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pnr', sa.String(length=16), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('bus_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(length=128), nullable=False),
        sa.Column('contact_email', sa.String(length=255), nullable=False),
        sa.Column('contact_phone', sa.String(length=32), nullable=False),
        sa.Column('total_seats', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='confirmed'),
        sa.Column('booked_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['bus_id'], ['buses.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_bookings_pnr', 'bookings', ['pnr'], unique=True)
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'], unique=False)
    op.create_index('ix_bookings_bus_id', 'bookings', ['bus_id'], unique=False)
    op.create_index('ix_bookings_status', 'bookings', ['status'], unique=False)

    op.create_table('seats',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('bus_id', sa.Integer(), nullable=False),
        sa.Column('seat_number', sa.String(length=16), nullable=False),
        sa.Column('is_booked', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('booking_id', sa.Integer(), nullable=True),
        sa.Column('passenger_name', sa.String(length=255), nullable=True),
        sa.Column('passenger_age', sa.Integer(), nullable=True),
        sa.Column('passenger_gender', sa.String(length=16), nullable=True),
        sa.ForeignKeyConstraint(['bus_id'], ['buses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('bus_id', 'seat_number', name='uq_bus_seat_number'),
    )
    op.create_index('ix_seats_bus_id', 'seats', ['bus_id'], unique=False)
    op.create_index('ix_seats_booking_id', 'seats', ['booking_id'], unique=False)

    op.create_table('passengers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('age', sa.Integer(), nullable=False),
        sa.Column('gender', sa.String(length=16), nullable=False),
        sa.Column('seat_number', sa.String(length=16), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_passengers_booking_id', 'passengers', ['booking_id'], unique=False)

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('object_type', sa.String(length=128), nullable=True),
        sa.Column('object_id', sa.String(length=128), nullable=True),
        sa.Column('detail', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'], unique=False)


def downgrade():
    op.drop_index('ix_audit_logs_actor_id', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_passengers_booking_id', table_name='passengers')
    op.drop_table('passengers')
    op.drop_index('ix_seats_booking_id', table_name='seats')
    op.drop_index('ix_seats_bus_id', table_name='seats')
    op.drop_table('seats')
    op.drop_index('ix_bookings_status', table_name='bookings')
    op.drop_index('ix_bookings_bus_id', table_name='bookings')
    op.drop_index('ix_bookings_user_id', table_name='bookings')
    op.drop_index('ix_bookings_pnr', table_name='bookings')
    op.drop_table('bookings')
    op.drop_index('ix_bus_route_date', table_name='buses')
    op.drop_index('ix_buses_journey_date', table_name='buses')
    op.drop_index('ix_buses_to_city', table_name='buses')
    op.drop_index('ix_buses_from_city', table_name='buses')
    op.drop_table('buses')
