"""User lookups for identity resolution and staff pickers."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from musicshop.core.enums import UserRole
from musicshop.models.user import User


class UserService:
    """Service class for user operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: int) -> User | None:
        """Get user by ID."""
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def list_by_role(self, role: UserRole) -> list[User]:
        """Get active users holding a role, ordered by name."""
        result = await self.db.execute(
            select(User)
            .where(User.role == role)
            .where(User.status == "active")
            .order_by(User.full_name.asc(), User.id.asc())
        )
        return list(result.scalars().all())
