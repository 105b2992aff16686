"""Property model and its satellite tables (amenities, pets allowed, images)."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, Float, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentals.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

PROPERTY_TYPES = (
    "house",
    "apartment",
    "room",
    "office",
    "commercial",
    "land",
    "daily-rental",
    "new-building",
    "parking-lot",
)
PROPERTY_STATUSES = ("for-rent", "for-sale", "unavailable")
PET_TYPES = ("cats-allowed", "dogs-allowed")


class Property(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A listing owned by a host user."""

    __tablename__ = "properties"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    bedrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[Decimal | None] = mapped_column(Numeric(3, 1), nullable=True)
    square_feet: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    property_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="for-rent", nullable=False, index=True)
    image: Mapped[str | None] = mapped_column(String(512), nullable=True)
    is_new: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    parking_spaces: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    host_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    average_rating: Mapped[Decimal] = mapped_column(Numeric(3, 2), default=Decimal("0"), nullable=False)
    views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    archived_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Relationships
    host: Mapped["User | None"] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="properties", lazy="selectin"
    )
    amenities: Mapped[list["PropertyAmenity"]] = relationship(
        back_populates="property", lazy="selectin", cascade="all, delete-orphan"
    )
    pets_allowed: Mapped[list["PropertyPetAllowed"]] = relationship(
        back_populates="property", lazy="selectin", cascade="all, delete-orphan"
    )
    images: Mapped[list["PropertyImage"]] = relationship(
        back_populates="property",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="PropertyImage.created_at",
    )
    bookings: Mapped[list["Booking"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="property", lazy="raise", cascade="all, delete-orphan", passive_deletes=True
    )
    reviews: Mapped[list["Review"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="property", lazy="raise", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint("price > 0", name="ck_properties_price_positive"),
        CheckConstraint("parking_spaces >= 0", name="ck_properties_parking_non_negative"),
    )

    @property
    def amenity_values(self) -> list[str]:
        return [a.amenity for a in self.amenities]

    @property
    def pet_values(self) -> list[str]:
        return [p.pet_type for p in self.pets_allowed]

    @property
    def additional_images(self) -> list[str]:
        """URLs of every non-primary image, oldest first."""
        return [img.image_url for img in self.images if not img.is_primary]

    @property
    def primary_image(self) -> "PropertyImage | None":
        return next((img for img in self.images if img.is_primary), None)

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, title={self.title!r}, type={self.property_type!r})>"


class PropertyAmenity(Base):
    """One amenity value offered by a property."""

    __tablename__ = "property_amenities"

    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        primary_key=True,
    )
    amenity: Mapped[str] = mapped_column(String(100), primary_key=True)

    property: Mapped["Property"] = relationship(back_populates="amenities")

    def __repr__(self) -> str:
        return f"<PropertyAmenity(property_id={self.property_id}, amenity={self.amenity!r})>"


class PropertyPetAllowed(Base):
    """One pet policy value accepted by a property."""

    __tablename__ = "property_pets_allowed"

    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        primary_key=True,
    )
    pet_type: Mapped[str] = mapped_column(String(50), primary_key=True)

    property: Mapped["Property"] = relationship(back_populates="pets_allowed")

    def __repr__(self) -> str:
        return f"<PropertyPetAllowed(property_id={self.property_id}, pet_type={self.pet_type!r})>"


class PropertyImage(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """An image URL attached to a property; at most one is primary."""

    __tablename__ = "property_images"

    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_url: Mapped[str] = mapped_column(String(512), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    property: Mapped["Property"] = relationship(back_populates="images")

    def __repr__(self) -> str:
        return f"<PropertyImage(id={self.id}, property_id={self.property_id}, primary={self.is_primary})>"
