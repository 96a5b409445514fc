"""Create events table

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('door_number', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=10), nullable=False),
        sa.Column('timestamp_utc', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('door_number >= 1 AND door_number <= 26', name='ck_events_door_number_range'),
        sa.CheckConstraint("event_type IN ('A_IN', 'A_OUT', 'B_IN', 'B_OUT')", name='ck_events_event_type_valid'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_events_button_latest', 'events', ['door_number', 'event_type', 'timestamp_utc', 'id'], unique=False)
    op.create_index('ix_events_created_at', 'events', ['created_at'], unique=False)
    op.create_index(
        'ix_events_active_timestamp', 'events', ['timestamp_utc', 'id'], unique=False,
        postgresql_where=sa.text('deleted_at IS NULL'),
        sqlite_where=sa.text('deleted_at IS NULL'),
    )


def downgrade() -> None:
    op.drop_index('ix_events_active_timestamp', table_name='events')
    op.drop_index('ix_events_created_at', table_name='events')
    op.drop_index('ix_events_button_latest', table_name='events')
    op.drop_table('events')
