"""HTTP routers of the marketplace API."""

from app.api import accounts, admin, catalog, cooks, delivery, orders, shopping

routers = [
    accounts.router,
    catalog.router,
    shopping.router,
    orders.router,
    cooks.router,
    delivery.router,
    admin.router,
]

__all__ = ["routers"]
