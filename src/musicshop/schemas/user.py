"""User schemas for staff pickers and embedded actor info."""

from pydantic import BaseModel

from musicshop.core.enums import UserRole


class UserResponse(BaseModel):
    """Schema for user response."""

    id: int
    full_name: str
    email: str
    phone: str | None = None
    role: UserRole

    model_config = {"from_attributes": True}
