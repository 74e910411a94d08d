"""API v1 routers."""

from musicshop.api.v1 import orders, orders_admin, trade_in

__all__ = ["orders", "orders_admin", "trade_in"]
