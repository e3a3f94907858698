"""
                        Services Module

Business logic of the marketplace. Request handlers and Celery tasks call
these; none of them know about HTTP.

Services:
    - workflow / cook_assignment / delivery: order lifecycle and assignment
    - settlements / wallets: cook payables and driver cash
    - catalog / cook_dishes / cart / checkout / pricing: ordering
    - staff / ratings / reports: registry, feedback, admin figures
    - alerts: order change feed and staff alert boards
    - notifications: SMS and email (Mock in development, Real in production)
    - excel_manager: thread-safe Excel report exports
"""

from app.services.excel_manager import ExcelManager

__all__ = ["ExcelManager"]
