import asyncio
import aiohttp
import aiosmtplib
import logging
from typing import List, Dict, Optional, Any
from abc import ABC, abstractmethod
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from app.config import settings

logger = logging.getLogger(__name__)

class NotificationService(ABC):
    """Abstract base class for notification services"""

    @abstractmethod
    async def send_notification(self, recipient: str, message: str, **kwargs) -> bool:
        pass

class EmailService(NotificationService):
    """Email notification service"""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_username = settings.SMTP_USERNAME
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.FROM_EMAIL

    @property
    def configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_username)

    def build_message(
        self,
        to_email: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None
    ) -> MIMEMultipart:
        message = MIMEMultipart('alternative')
        message['From'] = self.from_email
        message['To'] = to_email
        message['Subject'] = subject

        message.attach(MIMEText(body, 'plain'))
        if html_body:
            message.attach(MIMEText(html_body, 'html'))
        return message

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None
    ) -> bool:
        """
        Send email notification

        Args:
            to_email: Recipient email address
            subject: Email subject
            body: Plain text email body
            html_body: HTML email body (optional)
        """
        if not self.configured:
            logger.warning(f"SMTP not configured; email to {to_email} skipped")
            return False

        message = self.build_message(to_email, subject, body, html_body)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.smtp_host,
                port=self.smtp_port,
                start_tls=True,
                username=self.smtp_username,
                password=self.smtp_password,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"Email sending error to {to_email}: {e}")
            return False

        logger.info(f"Email sent successfully to {to_email}")
        return True

    async def send_bulk_email(
        self,
        recipients: List[str],
        subject: str,
        body: str,
        html_body: Optional[str] = None
    ) -> Dict[str, bool]:
        """
        Send the same email to several recipients concurrently

        Returns:
            Dict mapping addresses to success status
        """
        sent = await asyncio.gather(*[
            self.send_email(recipient, subject, body, html_body)
            for recipient in recipients
        ])
        results = dict(zip(recipients, sent))

        success_count = sum(1 for success in results.values() if success)
        logger.info(f"Bulk email: {success_count}/{len(recipients)} sent successfully")
        return results

    async def send_notification(self, recipient: str, message: str, **kwargs) -> bool:
        """Implementation of abstract send_notification method"""
        subject = kwargs.get('subject', 'Tourist Safety Notification')
        return await self.send_email(recipient, subject, message, kwargs.get('html_body'))

class WebhookService(NotificationService):
    """JSON webhook delivery to responder dispatch systems"""

    def __init__(self, url: Optional[str] = None, token: Optional[str] = None):
        self.url = settings.RESPONDER_WEBHOOK_URL if url is None else url
        self.token = settings.RESPONDER_WEBHOOK_TOKEN if token is None else token

    @property
    def configured(self) -> bool:
        return bool(self.url)

    async def post(self, payload: Dict[str, Any]) -> bool:
        """POST payload to the webhook; any 2xx status counts as delivered"""
        if not self.configured:
            logger.warning("Responder webhook not configured; delivery skipped")
            return False

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json"
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.url,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=30)
                ) as response:
                    if 200 <= response.status < 300:
                        return True
                    response_text = await response.text()
                    logger.error(f"Webhook error: {response.status} - {response_text}")
                    return False

        except asyncio.TimeoutError:
            logger.error("Webhook request timeout")
            return False
        except aiohttp.ClientError as e:
            logger.error(f"Webhook request error: {e}")
            return False

    async def send_notification(self, recipient: str, message: str, **kwargs) -> bool:
        """Implementation of abstract send_notification method"""
        return await self.post({"recipient": recipient, "message": message, **kwargs})
