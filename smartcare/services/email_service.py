from typing import Optional, Dict, Any
import asyncio
import logging
from pathlib import Path
import jinja2
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from ..config import get_settings
from .notification_service import NotificationOutcome, is_timeout_error

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"


class EmailService:
    """Plain-text appointment emails sent through SendGrid.

    Without an API key the service stays usable and only logs what it would send.
    """

    channel = "email"

    def __init__(self, api_key: Optional[str] = None, sender_email: Optional[str] = None,
                 template_path: Optional[Path] = None):
        settings = get_settings()
        self.sendgrid_api_key = api_key if api_key is not None else settings.sendgrid_api_key
        self.sender_email = sender_email or settings.sender_email
        self.enabled = bool(self.sendgrid_api_key)

        if not self.enabled:
            logger.warning("SENDGRID_API_KEY not found - email delivery will be simulated")

        self.sg = SendGridAPIClient(api_key=self.sendgrid_api_key) if self.enabled else None

        self.template_env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(template_path or TEMPLATE_DIR)),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=jinja2.StrictUndefined,
        )

    def render(self, template_name: str, context: Dict[str, Any]) -> str:
        template = self.template_env.get_template(f"{template_name}.txt")
        return template.render(**context)

    async def send_email(self, to_email: Optional[str], subject: str, body: str,
                         recipient_id: Optional[str] = None) -> NotificationOutcome:
        """Send one email. Failures come back as an outcome, never as an exception."""
        if not to_email:
            logger.warning(f"No email address for user {recipient_id}; skipped '{subject}'")
            return NotificationOutcome.skipped(self.channel, recipient_id, "missing email address")

        if not self.enabled:
            logger.info(f"[SIMULATED] email to {to_email}: {subject}")
            return NotificationOutcome.sent(self.channel, recipient_id, simulated=True)

        try:
            mail = Mail(
                from_email=self.sender_email,
                to_emails=to_email,
                subject=subject,
                plain_text_content=body,
            )
            response = await asyncio.to_thread(self.sg.send, mail)
        except Exception as e:
            if is_timeout_error(e):
                return NotificationOutcome.failed(self.channel, recipient_id, e, timed_out=True)
            logger.error(f"Error sending email '{subject}' to {to_email}: {e}")
            return NotificationOutcome.failed(self.channel, recipient_id, e)

        if response.status_code in (200, 202):
            logger.info(f"Email sent to {to_email}: {subject}")
            message_id = response.headers.get("X-Message-Id") if response.headers else None
            return NotificationOutcome.sent(self.channel, recipient_id, reference=message_id)

        logger.error(f"SendGrid error {response.status_code} sending '{subject}' to {to_email}")
        return NotificationOutcome.failed(self.channel, recipient_id, f"SendGrid error: {response.status_code}")

    async def send_templated_email(self, to_email: Optional[str], template_name: str,
                                   context: Dict[str, Any], recipient_id: Optional[str] = None) -> NotificationOutcome:
        try:
            body = self.render(template_name, context)
        except jinja2.TemplateError as e:
            logger.error(f"Could not render email template '{template_name}': {e}")
            return NotificationOutcome.failed(self.channel, recipient_id, e)
        return await self.send_email(to_email, context["subject"], body, recipient_id=recipient_id)


email_service = EmailService()
