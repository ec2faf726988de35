"""create scheduling tables

Revision ID: 3f1c0a9d7b21
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = '3f1c0a9d7b21'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

event_lifecycle = sa.Enum(
    'draft', 'submitted', 'approved', 'scheduled', 'live',
    'completed', 'cancelled', 'locked', 'paused',
    name='event_lifecycle',
)
slot_request_status = sa.Enum(
    'pending', 'approved', 'rejected', 'counter_proposed', 'needs_changes',
    name='slot_request_status',
)
slot_request_priority = sa.Enum('normal', 'high', name='slot_request_priority')


def upgrade() -> None:
    op.create_table(
        'venues',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='UTC'),
        sa.Column('operating_start', sa.Time(), nullable=False),
        sa.Column('operating_end', sa.Time(), nullable=False),
        sa.Column('requires_slot_negotiation', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'venue_blocks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('venue_id', sa.String(36), sa.ForeignKey('venues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('block_date', sa.Date(), nullable=False),
        sa.Column('reason', sa.String(255), nullable=False, server_default=''),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('created_by', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_venue_blocks_venue_date', 'venue_blocks', ['venue_id', 'block_date'])

    op.create_table(
        'events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('host_id', sa.String(64), nullable=False),
        sa.Column('venue_id', sa.String(36), sa.ForeignKey('venues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('lifecycle', event_lifecycle, nullable=False, server_default='draft'),
        sa.Column('proposed_date', sa.Date(), nullable=True),
        sa.Column('proposed_start', sa.Time(), nullable=True),
        sa.Column('proposed_end', sa.Time(), nullable=True),
        sa.Column('published_date', sa.Date(), nullable=True),
        sa.Column('published_start', sa.Time(), nullable=True),
        sa.Column('published_end', sa.Time(), nullable=True),
        sa.Column('slot_request_id', sa.String(36), nullable=True),
        sa.Column('is_paused', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_events_host_id', 'events', ['host_id'])
    op.create_index('ix_events_venue_id', 'events', ['venue_id'])
    op.create_index('ix_events_lifecycle', 'events', ['lifecycle'])

    op.create_table(
        'slot_requests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('event_id', sa.String(36), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('host_id', sa.String(64), nullable=False),
        sa.Column('venue_id', sa.String(36), sa.ForeignKey('venues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('requested_date', sa.Date(), nullable=False),
        sa.Column('requested_start', sa.Time(), nullable=False),
        sa.Column('requested_end', sa.Time(), nullable=False),
        sa.Column('status', slot_request_status, nullable=False, server_default='pending'),
        sa.Column('priority', slot_request_priority, nullable=False, server_default='normal'),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('venue_response', sa.Text(), nullable=False, server_default=''),
        sa.Column('alternative_date', sa.Date(), nullable=True),
        sa.Column('alternative_start', sa.Time(), nullable=True),
        sa.Column('alternative_end', sa.Time(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_slot_requests_event_id', 'slot_requests', ['event_id'])
    op.create_index('ix_slot_requests_host_id', 'slot_requests', ['host_id'])
    op.create_index('ix_slot_requests_status', 'slot_requests', ['status'])
    op.create_index('ix_slot_requests_venue_requested_date', 'slot_requests', ['venue_id', 'requested_date'])
    op.create_index('ix_slot_requests_venue_alternative_date', 'slot_requests', ['venue_id', 'alternative_date'])
    # One live negotiation per event
    op.create_index(
        'uq_slot_requests_active_event',
        'slot_requests',
        ['event_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'counter_proposed', 'needs_changes')"),
    )

    op.create_table(
        'transition_log',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('entity_type', sa.String(20), nullable=False),
        sa.Column('entity_id', sa.String(36), nullable=False),
        sa.Column('venue_id', sa.String(36), nullable=True),
        sa.Column('action', sa.String(40), nullable=False),
        sa.Column('actor_id', sa.String(64), nullable=False),
        sa.Column('actor_role', sa.String(20), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False, server_default=''),
        sa.Column('before', sa.JSON(), nullable=False),
        sa.Column('after', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_transition_log_entity_id', 'transition_log', ['entity_id'])
    op.create_index('ix_transition_log_venue_id', 'transition_log', ['venue_id'])


def downgrade() -> None:
    op.drop_table('transition_log')
    op.drop_table('slot_requests')
    op.drop_table('events')
    op.drop_table('venue_blocks')
    op.drop_table('venues')
    slot_request_priority.drop(op.get_bind(), checkfirst=True)
    slot_request_status.drop(op.get_bind(), checkfirst=True)
    event_lifecycle.drop(op.get_bind(), checkfirst=True)
