# =============================================================================
# Email Delivery Integration (AWS SES)
# =============================================================================
#
# Setup:
#   1. Verify your sending email in AWS SES console
#   2. Set env vars:
#      - AWS_SES_FROM_EMAIL=noreply@yourdomain.com
#      - AWS_ACCESS_KEY_ID=...
#      - AWS_SECRET_ACCESS_KEY=...
#      - AWS_REGION=us-east-1
#      - APP_URL=https://elan.example.org   (invitation links point here)
#
# Without SES configured, emails are logged instead of sent.
#
# =============================================================================

import logging
from typing import Any

from elan.config import get_settings

logger = logging.getLogger(__name__)

# Boto3 is optional - gracefully degrade if not installed
try:
    import boto3
    from botocore.exceptions import ClientError
    BOTO3_AVAILABLE = True
except ImportError:
    BOTO3_AVAILABLE = False
    boto3 = None


# =============================================================================
# Email Templates
# =============================================================================

TEMPLATES = {
    "invitation": {
        "subject": "{inviter_name} invited you to {event_name}",
        "html": """
        <html>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h1 style="color: #333;">You're invited to {event_name}</h1>
            <p>{inviter_name} has invited you to join the publication team.</p>
            <p style="text-align: center; margin: 30px 0;">
                <a href="{invite_url}" style="background: #1f4e79; color: white; padding: 12px 30px; text-decoration: none; border-radius: 6px; display: inline-block;">
                    Accept Invitation
                </a>
            </p>
            <p style="color: #666; font-size: 14px;">Or copy this link: {invite_url}</p>
            <p style="color: #666; font-size: 14px;">This invitation expires in {expire_days} days.</p>
        </body>
        </html>
        """,
        "text": """
You're invited to {event_name}

{inviter_name} has invited you to join the publication team. Accept at:
{invite_url}

This invitation expires in {expire_days} days.
        """,
    },

    "publication_ready": {
        "subject": "{location_name} marked \"{title}\" as ready",
        "html": """
        <html>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h1 style="color: #333;">{title}</h1>
            <p>{location_name} has marked its publication for {publication_date} as ready.</p>
            <p style="text-align: center; margin: 30px 0;">
                <a href="{publication_url}" style="background: #1f4e79; color: white; padding: 12px 30px; text-decoration: none; border-radius: 6px; display: inline-block;">
                    Review Publication
                </a>
            </p>
        </body>
        </html>
        """,
        "text": """
{title}

{location_name} has marked its publication for {publication_date} as ready.
Review it at: {publication_url}
        """,
    },
}


# =============================================================================
# Email Service
# =============================================================================

class EmailService:
    """Send emails via AWS SES."""

    def __init__(self):
        self.settings = get_settings()
        self._client = None

    @property
    def client(self):
        """Lazy-load SES client."""
        if self._client is None and BOTO3_AVAILABLE and self.settings.use_aws:
            self._client = boto3.client(
                'ses',
                region_name=self.settings.aws_region,
                aws_access_key_id=self.settings.aws_access_key_id,
                aws_secret_access_key=self.settings.aws_secret_access_key,
            )
        return self._client

    @property
    def is_configured(self) -> bool:
        """Check if email sending is properly configured."""
        return (
            BOTO3_AVAILABLE
            and self.settings.use_aws
            and bool(self.settings.aws_ses_from_email)
        )

    def render(self, template: str, data: dict[str, Any]) -> tuple[str, str, str]:
        """Return (subject, html, text) for a template."""
        tpl = TEMPLATES[template]
        return (
            tpl["subject"].format(**data),
            tpl["html"].format(**data),
            tpl["text"].format(**data),
        )

    async def send(
        self,
        to: str,
        template: str,
        data: dict[str, Any] | None = None,
        subject_override: str | None = None,
    ) -> bool:
        """
        Send an email using a template.

        Args:
            to: Recipient email address
            template: Template name (e.g., "invitation")
            data: Template variables to substitute
            subject_override: Override the template's subject

        Returns:
            True if sent successfully, False otherwise
        """
        if template not in TEMPLATES:
            logger.error(f"Unknown email template: {template}")
            return False

        data = data or {}

        if not self.is_configured:
            logger.warning(f"Email not configured - would send '{template}' to {to}")
            try:
                logger.info(f"Email content: {TEMPLATES[template]['text'].format(**data)}")
            except KeyError as e:
                logger.error(f"Missing template variable for '{template}': {e}")
            return False

        try:
            subject, html_body, text_body = self.render(template, data)

            response = self.client.send_email(
                Source=self.settings.aws_ses_from_email,
                Destination={"ToAddresses": [to]},
                Message={
                    "Subject": {"Data": subject_override or subject, "Charset": "UTF-8"},
                    "Body": {
                        "Html": {"Data": html_body, "Charset": "UTF-8"},
                        "Text": {"Data": text_body, "Charset": "UTF-8"},
                    },
                },
            )

            logger.info(f"Email sent to {to}: {template} (MessageId: {response['MessageId']})")
            return True

        except ClientError as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False
        except KeyError as e:
            logger.error(f"Missing template variable for '{template}': {e}")
            return False

    def invite_url(self, invitation_id: str) -> str:
        return f"{self.settings.app_url.rstrip('/')}/invite/{invitation_id}"

    async def send_invitation(
        self,
        email: str,
        invitation_id: str,
        inviter_name: str,
        event_name: str,
    ) -> bool:
        """Send a team invitation with its accept link."""
        return await self.send(
            to=email,
            template="invitation",
            data={
                "inviter_name": inviter_name,
                "event_name": event_name,
                "invite_url": self.invite_url(invitation_id),
                "expire_days": self.settings.invitation_expire_days,
            },
        )

    async def send_publication_ready(
        self,
        email: str,
        title: str,
        location_name: str,
        publication_date: str,
        publication_id: str,
    ) -> bool:
        """Tell the host team a location signed off its publication."""
        return await self.send(
            to=email,
            template="publication_ready",
            data={
                "title": title,
                "location_name": location_name,
                "publication_date": publication_date,
                "publication_url": f"{self.settings.app_url.rstrip('/')}/publications/{publication_id}",
            },
        )


# Global instance
_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    """Get the email service singleton."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
