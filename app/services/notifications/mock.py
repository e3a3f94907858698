"""
Mock Notification Service

Simulates SMS and Email sending for development.
No actual messages are sent - just logged.
"""

import asyncio
import random
import uuid
import logging
from typing import Optional

from app.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
    StaleOrderSummary,
)

logger = logging.getLogger(__name__)


class MockNotificationService(BaseNotificationService):
    """Mock notification service for development."""

    def __init__(self, failure_rate: float = 0.05, latency: tuple[float, float] = (0.1, 0.3)):
        self.failure_rate = failure_rate
        self.latency = latency
        self.sent: list[dict] = []
        logger.info(f"MockNotificationService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        """Simulate network latency."""
        low, high = self.latency
        if high > 0:
            await asyncio.sleep(random.uniform(low, high))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Simulate sending SMS."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock SMS failed (simulated) to {to_phone}")
            return NotificationResult(
                success=False,
                error_message="Simulated SMS failure",
                provider="mock"
            )

        message_id = f"sms_mock_{uuid.uuid4().hex[:12]}"
        self.sent.append({"channel": "sms", "to": to_phone, "body": message, "id": message_id})
        logger.info(f"Mock SMS sent to {to_phone}: {message[:50]}... (ID: {message_id})")

        return NotificationResult(
            success=True,
            message_id=message_id,
            provider="mock"
        )

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        """Simulate sending email."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock email failed (simulated) to {to_email}")
            return NotificationResult(
                success=False,
                error_message="Simulated email failure",
                provider="mock"
            )

        message_id = f"email_mock_{uuid.uuid4().hex[:12]}"
        self.sent.append({"channel": "email", "to": to_email, "body": subject, "id": message_id})
        logger.info(f"Mock email sent to {to_email}: {subject} (ID: {message_id})")

        return NotificationResult(
            success=True,
            message_id=message_id,
            provider="mock"
        )

    async def send_stale_order_alert(
        self,
        admin_email: str,
        orders: list[StaleOrderSummary],
    ) -> NotificationResult:
        lines = [
            f"{o.order_number}: ward {o.ward_number}, waiting {o.minutes_waiting} min"
            for o in orders
        ]
        return await self.send_email(
            to_email=admin_email,
            subject=f"{len(orders)} ready order(s) without a delivery partner",
            body_html="<br>".join(lines),
            body_text="\n".join(lines),
        )

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
