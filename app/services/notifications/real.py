"""
Real Notification Service

Production implementation using:
- Twilio for staff SMS alerts
- SendGrid for admin email alerts
"""

import asyncio
import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from twilio.rest import Client as TwilioClient
from twilio.base.exceptions import TwilioException

from app.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
    StaleOrderSummary,
)
from app.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class RealNotificationService(BaseNotificationService):
    """Production notification service using Twilio and SendGrid."""

    def __init__(self):
        # Initialize Twilio
        if settings.twilio_account_sid and settings.twilio_auth_token:
            self.twilio_client = TwilioClient(
                settings.twilio_account_sid,
                settings.twilio_auth_token
            )
            self.twilio_from_number = settings.twilio_phone_number
        else:
            self.twilio_client = None
            logger.warning("Twilio credentials not configured")

        # Initialize SendGrid
        if settings.sendgrid_api_key:
            self.sendgrid_client = SendGridAPIClient(settings.sendgrid_api_key)
            self.sendgrid_from_email = settings.sendgrid_from_email
        else:
            self.sendgrid_client = None
            logger.warning("SendGrid credentials not configured")

        logger.info("RealNotificationService initialized")

    @property
    def provider_name(self) -> str:
        return "real"

    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send SMS via Twilio."""
        if not self.twilio_client:
            return NotificationResult(
                success=False,
                error_message="Twilio not configured",
                provider="twilio"
            )

        try:
            # Twilio's client is blocking
            result = await asyncio.to_thread(
                self.twilio_client.messages.create,
                body=message,
                from_=self.twilio_from_number,
                to=to_phone,
            )

            logger.info(f"SMS sent to {to_phone}: {result.sid}")

            return NotificationResult(
                success=True,
                message_id=result.sid,
                provider="twilio"
            )

        except TwilioException as e:
            logger.error(f"Twilio error: {e}")
            return NotificationResult(
                success=False,
                error_message=str(e),
                provider="twilio"
            )

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        """Send email via SendGrid."""
        if not self.sendgrid_client:
            return NotificationResult(
                success=False,
                error_message="SendGrid not configured",
                provider="sendgrid"
            )

        try:
            message = Mail(
                from_email=self.sendgrid_from_email,
                to_emails=to_email,
                subject=subject,
                html_content=body_html,
                plain_text_content=body_text
            )

            response = await asyncio.to_thread(self.sendgrid_client.send, message)

            logger.info(f"Email sent to {to_email}: {response.status_code}")

            return NotificationResult(
                success=response.status_code in [200, 201, 202],
                message_id=response.headers.get('X-Message-Id'),
                provider="sendgrid"
            )

        except Exception as e:
            logger.error(f"SendGrid error: {e}")
            return NotificationResult(
                success=False,
                error_message=str(e),
                provider="sendgrid"
            )

    async def send_stale_order_alert(
        self,
        admin_email: str,
        orders: list[StaleOrderSummary],
    ) -> NotificationResult:
        """Email a table of ready orders that no driver accepted."""
        rows = "".join(
            f"<tr><td>{o.order_number}</td><td>{o.panchayat_id}</td><td>{o.ward_number}</td>"
            f"<td>{o.minutes_waiting} min</td><td>{settings.currency_symbol}{o.total_amount:.2f}</td></tr>"
            for o in orders
        )
        email_html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #e67e22;">Orders waiting for a delivery partner</h2>
            <table cellpadding="6" style="border-collapse: collapse;">
                <tr><th>Order</th><th>Panchayat</th><th>Ward</th><th>Waiting</th><th>Amount</th></tr>
                {rows}
            </table>
            <p>Assign a delivery partner from the admin panel.</p>
        </div>
        """
        text = "\n".join(f"{o.order_number} ward {o.ward_number} ({o.minutes_waiting} min)" for o in orders)
        return await self.send_email(
            to_email=admin_email,
            subject=f"{len(orders)} ready order(s) without a delivery partner - {settings.app_name}",
            body_html=email_html,
            body_text=text,
        )

    async def health_check(self) -> bool:
        """Check that both providers are configured and Twilio answers."""
        if not self.twilio_client or not self.sendgrid_client:
            return False
        try:
            await asyncio.to_thread(
                self.twilio_client.api.accounts(settings.twilio_account_sid).fetch
            )
            return True
        except TwilioException as e:
            logger.error(f"Twilio health check failed: {e}")
            return False
