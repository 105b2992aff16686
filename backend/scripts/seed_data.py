"""Seed the database with sample hosts, listings, bookings and reviews.

Run from ``backend/``:
    python -m scripts.seed_data
"""

import asyncio
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete, select

from rentals.auth.passwords import hash_password
from rentals.config import settings
from rentals.database import Database
from rentals.models.booking import Booking
from rentals.models.payment import Payment
from rentals.models.property import Property, PropertyAmenity, PropertyPetAllowed
from rentals.models.review import Review
from rentals.models.user import User
from rentals.services.rating_service import recalculate_all_ratings

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

DEMO_PASSWORD = "demo1234"

USERS = [
    {"email": "admin@oasis.rentals", "first_name": "Ada", "last_name": "Admin", "role": "admin"},
    {"email": "host@oasis.rentals", "first_name": "Hana", "last_name": "Host", "role": "host"},
    {"email": "guest@oasis.rentals", "first_name": "Gus", "last_name": "Guest", "role": "user"},
]

PROPERTIES = [
    {
        "title": "Sunny Family House with Garden",
        "description": "Three bedrooms, a fenced garden and a quiet street ten minutes from the centre.",
        "address": "12 Orchard Lane",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62701",
        "price": Decimal("150000.00"),
        "bedrooms": 3,
        "bathrooms": Decimal("2.0"),
        "square_feet": Decimal("1850"),
        "property_type": "house",
        "status": "for-sale",
        "is_featured": True,
        "is_verified": True,
        "parking_spaces": 2,
        "lat": 39.7817,
        "lng": -89.6501,
        "amenities": ["wifi", "garden", "parking"],
        "pets": ["dogs-allowed", "cats-allowed"],
    },
    {
        "title": "Downtown Loft near the River",
        "description": "Open-plan loft with exposed brick, rooftop access and a pool in the building.",
        "address": "300 Water Street, Apt 5B",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62702",
        "price": Decimal("1450.00"),
        "bedrooms": 1,
        "bathrooms": Decimal("1.0"),
        "square_feet": Decimal("720"),
        "property_type": "apartment",
        "status": "for-rent",
        "is_new": True,
        "lat": 39.8001,
        "lng": -89.6436,
        "amenities": ["wifi", "pool", "gym"],
        "pets": ["cats-allowed"],
    },
    {
        "title": "Beach Cottage for Weekend Stays",
        "description": "Two-bedroom cottage steps from the sand. Booked by the night.",
        "address": "8 Dune Road",
        "city": "Seaside",
        "state": "OR",
        "zip_code": "97138",
        "price": Decimal("180.00"),
        "bedrooms": 2,
        "bathrooms": Decimal("1.5"),
        "square_feet": Decimal("900"),
        "property_type": "daily-rental",
        "status": "for-rent",
        "is_featured": True,
        "lat": 45.9932,
        "lng": -123.9226,
        "amenities": ["wifi", "pool", "beach-access", "parking"],
        "pets": [],
    },
    {
        "title": "Small Office in Business Park",
        "description": "Ground-floor office suite with meeting room and fibre internet.",
        "address": "45 Commerce Park",
        "city": "Portland",
        "state": "OR",
        "zip_code": "97201",
        "price": Decimal("2200.00"),
        "bedrooms": None,
        "bathrooms": Decimal("1.0"),
        "square_feet": Decimal("1100"),
        "property_type": "office",
        "status": "for-rent",
        "parking_spaces": 4,
        "lat": 45.5152,
        "lng": -122.6784,
        "amenities": ["wifi", "parking", "air-conditioning"],
        "pets": [],
    },
]

REVIEWS = [
    # (property title, rating, comment)
    ("Sunny Family House with Garden", 5, "Lovely garden and very responsive host."),
    ("Sunny Family House with Garden", 3, "Nice house, but the street was noisier than expected."),
    ("Beach Cottage for Weekend Stays", 4, "Perfect location for a weekend away."),
]


# ---------------------------------------------------------------------------
# Main seed function
# ---------------------------------------------------------------------------


async def seed() -> None:
    """Populate the database with sample data.

    Idempotent: existing demo accounts and everything they own are deleted
    and re-created.
    """
    database = Database(settings.async_database_url)
    await database.create_all()

    async with database.session() as session:
        emails = [u["email"] for u in USERS]
        existing = (await session.execute(select(User.id).where(User.email.in_(emails)))).scalars().all()
        if existing:
            print("⚠️  Demo accounts already exist. Deleting and re-seeding...")
            property_ids = select(Property.id).where(Property.host_id.in_(existing))
            booking_ids = select(Booking.id).where(Booking.property_id.in_(property_ids))
            await session.execute(delete(Payment).where(Payment.booking_id.in_(booking_ids)))
            await session.execute(delete(Review).where(Review.property_id.in_(property_ids)))
            await session.execute(delete(Booking).where(Booking.property_id.in_(property_ids)))
            await session.execute(delete(Property).where(Property.id.in_(property_ids)))
            await session.execute(delete(User).where(User.id.in_(existing)))
            await session.flush()

        # ------------------------------------------------------------------
        # 1. Users
        # ------------------------------------------------------------------
        users: dict[str, User] = {}
        for data in USERS:
            user = User(hashed_password=hash_password(DEMO_PASSWORD), **data)
            session.add(user)
            users[data["role"]] = user
        await session.flush()
        print(f"✅ Created {len(users)} users (password: {DEMO_PASSWORD})")

        # ------------------------------------------------------------------
        # 2. Properties
        # ------------------------------------------------------------------
        host = users["host"]
        properties: dict[str, Property] = {}
        for data in PROPERTIES:
            data = dict(data)
            amenities = data.pop("amenities")
            pets = data.pop("pets")
            prop = Property(host_id=host.id, **data)
            prop.amenities = [PropertyAmenity(amenity=a) for a in amenities]
            prop.pets_allowed = [PropertyPetAllowed(pet_type=p) for p in pets]
            session.add(prop)
            properties[prop.title] = prop
            print(f"   🏠 {prop.title} — {prop.city} (${prop.price})")
        await session.flush()

        # ------------------------------------------------------------------
        # 3. Bookings and a payment
        # ------------------------------------------------------------------
        guest = users["user"]
        cottage = properties["Beach Cottage for Weekend Stays"]
        today = date.today()
        stays = [
            (today - timedelta(days=30), 3, "completed", "completed"),
            (today + timedelta(days=10), 2, "confirmed", "completed"),
            (today + timedelta(days=40), 4, "pending", "pending"),
        ]
        for check_in, nights, status, payment_status in stays:
            booking = Booking(
                property_id=cottage.id,
                user_id=guest.id,
                guest_name=guest.display_name,
                guest_email=guest.email,
                check_in_date=check_in,
                check_out_date=check_in + timedelta(days=nights),
                guests=2,
                total_price=cottage.price * nights,
                status=status,
                payment_status=payment_status,
                payment_method="credit_card" if payment_status == "completed" else None,
            )
            session.add(booking)
            await session.flush()
            if payment_status == "completed":
                session.add(
                    Payment(
                        booking_id=booking.id,
                        amount=booking.total_price,
                        currency=settings.payment_currency,
                        payment_method="credit_card",
                        status="completed",
                        transaction_id=f"TXSEED{booking.id.hex[:12].upper()}",
                    )
                )
        print(f"✅ Created {len(stays)} bookings")

        # ------------------------------------------------------------------
        # 4. Reviews and ratings
        # ------------------------------------------------------------------
        reviewers = [guest, users["admin"], guest]
        for (title, rating, comment), reviewer in zip(REVIEWS, reviewers, strict=True):
            session.add(
                Review(
                    property_id=properties[title].id,
                    reviewer_id=reviewer.id,
                    reviewer_name=reviewer.display_name,
                    email=reviewer.email,
                    rating=rating,
                    comment=comment,
                )
            )
        await session.flush()
        result = await recalculate_all_ratings(session)
        await session.commit()

        print(f"✅ Created {len(REVIEWS)} reviews; {result['updated_properties']} ratings updated")
        print()
        print("=" * 60)
        print("🎉 Done! Log in at /api/auth/login with any demo account.")
        print("=" * 60)

    await database.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
