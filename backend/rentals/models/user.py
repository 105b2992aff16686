"""User model — authentication and profile."""

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentals.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

USER_ROLES = ("user", "host", "admin")


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A marketplace account: guest, host, or administrator."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    profile_image: Mapped[str | None] = mapped_column(String(512), nullable=True)
    short_bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)  # user, host, admin

    # Relationships
    properties: Mapped[list["Property"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="host", lazy="raise"
    )

    @property
    def display_name(self) -> str:
        """First and last name joined, or ``"Host"`` when neither is set."""
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or "Host"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role!r}>"
