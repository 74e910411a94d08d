"""Order history schemas."""

from datetime import datetime

from pydantic import BaseModel

from musicshop.core.enums import OrderStatus, UserRole
from musicshop.models.history import OrderHistoryEntry


class HistoryEntryResponse(BaseModel):
    """Schema for one ledger entry."""

    id: int
    order_id: int
    changed_at: datetime
    old_status: OrderStatus | None = None
    new_status: OrderStatus
    changed_by_id: int | None = None
    changed_by_role: UserRole | None = None
    changed_by_name: str | None = None
    note: str | None = None

    @classmethod
    def from_entry(cls, entry: OrderHistoryEntry) -> "HistoryEntryResponse":
        return cls(
            id=entry.id,
            order_id=entry.order_id,
            changed_at=entry.changed_at,
            old_status=entry.old_status,
            new_status=entry.new_status,
            changed_by_id=entry.changed_by_id,
            changed_by_role=entry.changed_by_role,
            changed_by_name=entry.changed_by.full_name if entry.changed_by else None,
            note=entry.note,
        )
