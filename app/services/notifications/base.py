"""
Notification Service Abstract Base Class

Staff alerts go out by SMS (delivery staff, cooks) and email (admin
stale-order digest). Mock (development) and Real (production)
implementations share this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


@dataclass
class StaleOrderSummary:
    """One ready order nobody has picked up, as listed in the admin alert."""
    order_number: str
    panchayat_id: int
    ward_number: int
    minutes_waiting: int
    total_amount: float


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send an SMS message."""
        pass

    @abstractmethod
    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        """Send an email."""
        pass

    async def send_delivery_alert(
        self,
        staff_phone: str,
        staff_name: str,
        order_number: str,
        ward_number: int,
        seconds_to_accept: int,
    ) -> NotificationResult:
        """Tell a delivery staff member a ready order is waiting in their area."""
        message = (
            f"Hi {staff_name}, order {order_number} (ward {ward_number}) is ready for pickup. "
            f"Accept within {seconds_to_accept}s before another driver takes it."
        )
        return await self.send_sms(staff_phone, message)

    async def send_cook_assignment_alert(
        self,
        cook_phone: str,
        kitchen_name: str,
        order_number: str,
        seconds_to_respond: int,
    ) -> NotificationResult:
        """Tell a cook they were assigned an order."""
        message = (
            f"{kitchen_name}: new order {order_number} assigned to you. "
            f"Accept or reject within {seconds_to_respond}s."
        )
        return await self.send_sms(cook_phone, message)

    @abstractmethod
    async def send_stale_order_alert(
        self,
        admin_email: str,
        orders: list[StaleOrderSummary],
    ) -> NotificationResult:
        """Email admins the ready orders no driver accepted in time."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass
