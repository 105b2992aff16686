"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

Users, properties (with amenities, pets allowed and images), bookings,
payments and reviews.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # === USERS ===
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('profile_image', sa.String(512), nullable=True),
        sa.Column('short_bio', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # === PROPERTIES ===
    op.create_table(
        'properties',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('address', sa.String(255), nullable=False),
        sa.Column('city', sa.String(100), nullable=False),
        sa.Column('state', sa.String(100), nullable=True),
        sa.Column('zip_code', sa.String(20), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('bedrooms', sa.Integer(), nullable=True),
        sa.Column('bathrooms', sa.Numeric(3, 1), nullable=True),
        sa.Column('square_feet', sa.Numeric(10, 2), nullable=True),
        sa.Column('property_type', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('image', sa.String(512), nullable=True),
        sa.Column('is_new', sa.Boolean(), nullable=False),
        sa.Column('is_featured', sa.Boolean(), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        sa.Column('parking_spaces', sa.Integer(), nullable=False),
        sa.Column('host_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('average_rating', sa.Numeric(3, 2), nullable=False),
        sa.Column('views', sa.Integer(), nullable=False),
        sa.Column('lat', sa.Float(), nullable=True),
        sa.Column('lng', sa.Float(), nullable=True),
        sa.Column('archived', sa.Boolean(), nullable=False),
        sa.Column('archived_at', sa.DateTime(), nullable=True),
        sa.Column('archived_reason', sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('price > 0', name='ck_properties_price_positive'),
        sa.CheckConstraint('parking_spaces >= 0', name='ck_properties_parking_non_negative'),
    )
    op.create_index('ix_properties_city', 'properties', ['city'])
    op.create_index('ix_properties_property_type', 'properties', ['property_type'])
    op.create_index('ix_properties_status', 'properties', ['status'])
    op.create_index('ix_properties_host_id', 'properties', ['host_id'])
    op.create_index('ix_properties_archived', 'properties', ['archived'])

    op.create_table(
        'property_amenities',
        sa.Column('property_id', sa.Uuid(), sa.ForeignKey('properties.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('amenity', sa.String(100), primary_key=True),
    )
    op.create_table(
        'property_pets_allowed',
        sa.Column('property_id', sa.Uuid(), sa.ForeignKey('properties.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('pet_type', sa.String(50), primary_key=True),
    )
    op.create_table(
        'property_images',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('property_id', sa.Uuid(), sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False),
        sa.Column('image_url', sa.String(512), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_property_images_property_id', 'property_images', ['property_id'])

    # === BOOKINGS ===
    op.create_table(
        'bookings',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('property_id', sa.Uuid(), sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('guest_name', sa.String(255), nullable=False),
        sa.Column('guest_email', sa.String(255), nullable=False),
        sa.Column('guest_phone', sa.String(30), nullable=True),
        sa.Column('check_in_date', sa.Date(), nullable=False),
        sa.Column('check_out_date', sa.Date(), nullable=False),
        sa.Column('guests', sa.Integer(), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False),
        sa.Column('payment_method', sa.String(30), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('check_out_date > check_in_date', name='ck_bookings_dates_ordered'),
        sa.CheckConstraint('guests >= 1', name='ck_bookings_guests_positive'),
        sa.CheckConstraint('total_price > 0', name='ck_bookings_total_positive'),
    )
    op.create_index('ix_bookings_property_id', 'bookings', ['property_id'])
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('ix_bookings_property_dates', 'bookings', ['property_id', 'check_in_date', 'check_out_date'])

    # === PAYMENTS ===
    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('booking_id', sa.Uuid(), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('payment_method', sa.String(30), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('transaction_id', sa.String(255), nullable=True, unique=True),
        sa.Column('payment_date', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('amount > 0', name='ck_payments_amount_positive'),
    )
    op.create_index('ix_payments_booking_id', 'payments', ['booking_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])

    # === REVIEWS ===
    # reviewer_id is deliberately not a foreign key: imported and anonymous reviews use the nil UUID.
    op.create_table(
        'reviews',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('property_id', sa.Uuid(), sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False),
        sa.Column('booking_id', sa.Uuid(), sa.ForeignKey('bookings.id', ondelete='SET NULL'), nullable=True),
        sa.Column('reviewer_id', sa.Uuid(), nullable=False),
        sa.Column('reviewer_name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('likes', sa.Integer(), nullable=False),
        sa.Column('dislikes', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('rating BETWEEN 1 AND 5', name='ck_reviews_rating_range'),
        sa.CheckConstraint('likes >= 0 AND dislikes >= 0', name='ck_reviews_counters_non_negative'),
    )
    op.create_index('ix_reviews_property_id', 'reviews', ['property_id'])
    op.create_index('ix_reviews_reviewer_id', 'reviews', ['reviewer_id'])


def downgrade() -> None:
    op.drop_table('reviews')
    op.drop_table('payments')
    op.drop_table('bookings')
    op.drop_table('property_images')
    op.drop_table('property_pets_allowed')
    op.drop_table('property_amenities')
    op.drop_table('properties')
    op.drop_table('users')
