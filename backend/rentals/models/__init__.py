"""SQLAlchemy models for the rentals backend.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from rentals.models.booking import Booking
from rentals.models.favorite import Favorite
from rentals.models.payment import Payment
from rentals.models.property import Property, PropertyAmenity, PropertyImage, PropertyPetAllowed
from rentals.models.review import Review
from rentals.models.user import User

__all__ = [
    "Booking",
    "Favorite",
    "Payment",
    "Property",
    "PropertyAmenity",
    "PropertyImage",
    "PropertyPetAllowed",
    "Review",
    "User",
]
