"""User model; owned by the auth service, read here for roles and names."""

from sqlalchemy import Enum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from musicshop.core.database import Base
from musicshop.core.enums import UserRole
from musicshop.models.base import TimestampMixin


class User(Base, TimestampMixin):
    """Shop user: client or staff member."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(
        String(150),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    phone: Mapped[str | None] = mapped_column(
        String(40),
        nullable=True,
    )
    role: Mapped[UserRole] = mapped_column(
        Enum(
            UserRole,
            name="user_role",
            native_enum=False,
            length=20,
            values_callable=lambda roles: [r.value for r in roles],
        ),
        nullable=False,
        default=UserRole.CLIENT,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="active",
    )

    __table_args__ = (
        Index("idx_users_role", "role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
