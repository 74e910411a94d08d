"""Order history ledger: who changed what, and when."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from musicshop.core.enums import OrderStatus
from musicshop.models.base import utcnow
from musicshop.models.history import OrderHistoryEntry
from musicshop.models.user import User


class HistoryService:
    """Append-only ledger of order changes.

    ``append`` only adds to the caller's session; the caller commits it together
    with the order mutation that produced the entry.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        order_id: int,
        old_status: OrderStatus | None,
        new_status: OrderStatus,
        actor: User | None,
        note: str | None = None,
    ) -> OrderHistoryEntry:
        """Record a change of an order.

        Args:
            order_id: Order ID
            old_status: Status before the change (None for creation)
            new_status: Status after the change
            actor: Acting user, None for system events
            note: Optional free-text note

        Returns:
            The pending history entry
        """
        entry = OrderHistoryEntry(
            order_id=order_id,
            changed_at=utcnow(),
            old_status=old_status,
            new_status=new_status,
            changed_by_id=actor.id if actor is not None else None,
            changed_by_role=actor.role if actor is not None else None,
            note=note,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list(self, order_id: int) -> list[OrderHistoryEntry]:
        """Get the history of an order, oldest first."""
        result = await self.db.execute(
            select(OrderHistoryEntry)
            .options(selectinload(OrderHistoryEntry.changed_by))
            .where(OrderHistoryEntry.order_id == order_id)
            .order_by(OrderHistoryEntry.changed_at.asc(), OrderHistoryEntry.id.asc())
        )
        return list(result.scalars().all())
