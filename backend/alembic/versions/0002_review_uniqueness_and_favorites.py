"""review_uniqueness_and_favorites

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19 14:00:00.000000

One review per named reviewer and property, plus the favorites table.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, Sequence[str], None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NIL_UUID = '00000000-0000-0000-0000-000000000000'


def upgrade() -> None:
    # === REVIEWS ===
    # Anonymous and imported reviews share the nil UUID and stay unconstrained.
    op.create_index(
        'uq_reviews_property_reviewer',
        'reviews',
        ['property_id', 'reviewer_id'],
        unique=True,
        postgresql_where=sa.text(f"reviewer_id <> '{NIL_UUID}'::uuid"),
        sqlite_where=sa.text(f"reviewer_id <> '{NIL_UUID.replace('-', '')}'"),
    )

    # === FAVORITES ===
    op.create_table(
        'favorites',
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('property_id', sa.Uuid(), sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'property_id'),
    )
    op.create_index('ix_favorites_property_id', 'favorites', ['property_id'])


def downgrade() -> None:
    op.drop_index('ix_favorites_property_id', table_name='favorites')
    op.drop_table('favorites')
    op.drop_index('uq_reviews_property_reviewer', table_name='reviews')
