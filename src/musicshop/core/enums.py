from enum import Enum


class UserRole(str, Enum):
    CLIENT = "client"
    ADMIN = "admin"
    MANAGER = "manager"
    COURIER = "courier"

    def __str__(self):
        return self.value


class AssignmentRole(str, Enum):
    MANAGER = "manager"
    COURIER = "courier"

    def __str__(self):
        return self.value

    @property
    def user_role(self) -> UserRole:
        return UserRole(self.value)


class OrderStatus(str, Enum):
    NEW = "new"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERING = "delivering"
    FINISHED = "finished"
    CANCELED = "canceled"

    def __str__(self):
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def status_id(self) -> int:
        """1-based position used by the back office status pickers."""
        return list(OrderStatus).index(self) + 1

    @classmethod
    def from_status_id(cls, status_id: int) -> "OrderStatus":
        members = list(cls)
        if status_id < 1 or status_id > len(members):
            raise ValueError(f"Unknown status id {status_id}")
        return members[status_id - 1]


TERMINAL_STATUSES = frozenset({OrderStatus.FINISHED, OrderStatus.CANCELED})
CANCELABLE_STATUSES = frozenset({OrderStatus.NEW, OrderStatus.PREPARING, OrderStatus.READY})
