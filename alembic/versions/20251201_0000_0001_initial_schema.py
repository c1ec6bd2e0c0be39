"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2025-12-01 00:00:00.000000

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    """Create user administration tables and the transactional outbox."""
    op.create_table(
        'departments',
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('manager_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('code', name=op.f('pk_departments')),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column(
            'role',
            sa.Enum('ADMIN', 'INSTRUCTOR', 'MANAGER', 'EMPLOYEE', name='user_role', native_enum=False, length=32),
            nullable=False,
        ),
        sa.Column('department_id', sa.String(length=32), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('password_reset_requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ['department_id'],
            ['departments.code'],
            name=op.f('fk_users_department_id_departments'),
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    # Derived table: a row exists exactly while users.role = 'INSTRUCTOR'
    op.create_table(
        'instructors',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('specialties', JSON_TYPE, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ['user_id'],
            ['users.id'],
            name=op.f('fk_instructors_user_id_users'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_instructors')),
        sa.UniqueConstraint('user_id', name=op.f('uq_instructors_user_id')),
    )

    op.create_table(
        'outbox_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_id', sa.Uuid(), nullable=False),
        sa.Column('topic', sa.String(length=255), nullable=False),
        sa.Column('payload', JSON_TYPE, nullable=False),
        sa.Column('correlation_id', sa.String(length=64), nullable=True),

        # Delivery state
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('dead_lettered_at', sa.DateTime(timezone=True), nullable=True),

        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_outbox_events')),
        sa.UniqueConstraint('event_id', name=op.f('uq_outbox_events_event_id')),
    )
    op.create_index('ix_outbox_events_topic', 'outbox_events', ['topic'], unique=False)

    # Claim query: undelivered rows in id order
    op.create_index(
        'ix_outbox_events_pending',
        'outbox_events',
        ['id'],
        unique=False,
        postgresql_where=sa.text('processed = false'),
        sqlite_where=sa.text('processed = 0'),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('ix_outbox_events_pending', table_name='outbox_events')
    op.drop_index('ix_outbox_events_topic', table_name='outbox_events')
    op.drop_table('outbox_events')

    op.drop_table('instructors')

    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')

    op.drop_table('departments')
