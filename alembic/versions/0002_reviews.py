"""reviews

Revision ID: 0002_reviews
Revises: 0001_initial
Create Date: 2026-10-19 12:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_reviews'
down_revision = '0001_initial'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('reviews',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('bus_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('stars', sa.Integer(), nullable=False),
        sa.Column('review', sa.String(length=1000), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['bus_id'], ['buses.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('booking_id', name='uq_reviews_booking_id'),
    )
    op.create_index('ix_reviews_bus_id', 'reviews', ['bus_id'], unique=False)
    op.create_index('ix_reviews_user_id', 'reviews', ['user_id'], unique=False)


def downgrade():
    op.drop_index('ix_reviews_user_id', table_name='reviews')
    op.drop_index('ix_reviews_bus_id', table_name='reviews')
    op.drop_table('reviews')
