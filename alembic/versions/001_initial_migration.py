"""Initial migration - create catalog, rental, audit and chat tables

Revision ID: 001
Revises:
Create Date: 2026-10-19

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

RENTAL_STATUSES = (
    'pending', 'approved', 'active', 'returned',
    'completed', 'declined', 'cancelled', 'archived',
)


def upgrade() -> None:
    op.create_table(
        'categories',
        sa.Column('category_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('risk_tier', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('risk_daily_fee', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('deductible_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('category_id')
    )

    op.create_table(
        'listings',
        sa.Column('listing_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('category_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('daily_price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('is_high_powered', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('accepts_barter', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('booking_type', sa.Enum('instant', 'request', name='booking_type'), nullable=False),
        sa.Column('risk_tier_override', sa.Integer(), nullable=True),
        sa.Column('deposit_override', sa.Numeric(10, 2), nullable=True),
        sa.Column('status', sa.Enum('draft', 'active', 'archived', name='listing_status'), nullable=False),
        sa.ForeignKeyConstraint(['category_id'], ['categories.category_id']),
        sa.PrimaryKeyConstraint('listing_id')
    )
    op.create_index(op.f('ix_listings_owner_id'), 'listings', ['owner_id'])

    op.create_table(
        'blocked_dates',
        sa.Column('blackout_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('listing_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.CheckConstraint('start_date <= end_date', name='ck_blocked_dates_range'),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.listing_id']),
        sa.PrimaryKeyConstraint('blackout_id')
    )
    op.create_index(op.f('ix_blocked_dates_listing_id'), 'blocked_dates', ['listing_id'])

    op.create_table(
        'rentals',
        sa.Column('rental_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('listing_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('renter_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('total_days', sa.Integer(), nullable=False),
        sa.Column('daily_price_snapshot', sa.Numeric(10, 2), nullable=False),
        sa.Column('risk_tier_snapshot', sa.Integer(), nullable=False),
        sa.Column('rental_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('peace_fund_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('deposit_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total_paid', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.Enum(*RENTAL_STATUSES, name='rental_status'), nullable=False),
        sa.Column('decline_reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('start_date <= end_date', name='ck_rentals_range'),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.listing_id']),
        sa.PrimaryKeyConstraint('rental_id')
    )
    op.create_index('idx_rentals_listing_status', 'rentals', ['listing_id', 'status'])
    op.create_index('idx_rentals_listing_dates', 'rentals', ['listing_id', 'start_date', 'end_date'])
    op.create_index(op.f('ix_rentals_owner_id'), 'rentals', ['owner_id'])
    op.create_index(op.f('ix_rentals_renter_id'), 'rentals', ['renter_id'])
    op.create_index(op.f('ix_rentals_status'), 'rentals', ['status'])

    op.create_table(
        'rental_events',
        sa.Column('event_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('rental_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('event_type', sa.String(length=50), nullable=False),
        sa.Column('ts', sa.DateTime(), nullable=False),
        sa.Column('payload_json', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.PrimaryKeyConstraint('event_id')
    )
    op.create_index('idx_rental_events_rental_ts', 'rental_events', ['rental_id', 'ts'])
    op.create_index(op.f('ix_rental_events_rental_id'), 'rental_events', ['rental_id'])
    op.create_index(op.f('ix_rental_events_ts'), 'rental_events', ['ts'])

    op.create_table(
        'chats',
        sa.Column('chat_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('listing_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('renter_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('chat_id'),
        sa.UniqueConstraint('owner_id', 'renter_id', 'listing_id', name='uq_chats_triple')
    )

    op.create_table(
        'messages',
        sa.Column('message_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('chat_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sender_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('recipient_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('message_type', sa.String(length=20), nullable=False, server_default='system'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['chat_id'], ['chats.chat_id']),
        sa.PrimaryKeyConstraint('message_id')
    )
    op.create_index(op.f('ix_messages_chat_id'), 'messages', ['chat_id'])
    op.create_index(op.f('ix_messages_created_at'), 'messages', ['created_at'])


def downgrade() -> None:
    op.drop_index(op.f('ix_messages_created_at'), table_name='messages')
    op.drop_index(op.f('ix_messages_chat_id'), table_name='messages')
    op.drop_table('messages')
    op.drop_table('chats')

    op.drop_index(op.f('ix_rental_events_ts'), table_name='rental_events')
    op.drop_index(op.f('ix_rental_events_rental_id'), table_name='rental_events')
    op.drop_index('idx_rental_events_rental_ts', table_name='rental_events')
    op.drop_table('rental_events')

    op.drop_index(op.f('ix_rentals_status'), table_name='rentals')
    op.drop_index(op.f('ix_rentals_renter_id'), table_name='rentals')
    op.drop_index(op.f('ix_rentals_owner_id'), table_name='rentals')
    op.drop_index('idx_rentals_listing_dates', table_name='rentals')
    op.drop_index('idx_rentals_listing_status', table_name='rentals')
    op.drop_table('rentals')

    op.drop_index(op.f('ix_blocked_dates_listing_id'), table_name='blocked_dates')
    op.drop_table('blocked_dates')

    op.drop_index(op.f('ix_listings_owner_id'), table_name='listings')
    op.drop_table('listings')
    op.drop_table('categories')

    op.execute("DROP TYPE rental_status")
    op.execute("DROP TYPE listing_status")
    op.execute("DROP TYPE booking_type")
