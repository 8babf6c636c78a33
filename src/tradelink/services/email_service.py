"""
Email service for invitation links and claim notifications.

Simple SMTP-based email sending. Can be upgraded to queue-based
system later without changing the calling code.
"""

import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
import os

from tradelink.config import FRONTEND_URL

logger = logging.getLogger(__name__)


def claim_link(claim_token: str, base_url: str = FRONTEND_URL) -> str:
    return f"{base_url.rstrip('/')}/?invite={claim_token}"


class EmailService:
    """
    Simple email service using SMTP.

    Configuration via environment variables:
    - SMTP_HOST: SMTP server (default: localhost)
    - SMTP_PORT: SMTP port (default: 587)
    - SMTP_USERNAME: SMTP username
    - SMTP_PASSWORD: SMTP password
    - SMTP_USE_TLS: Use TLS (default: true)
    - SMTP_FROM_EMAIL: From email address (default: hello@tradelink.app)
    - SMTP_FROM_NAME: From name (default: TradeLink)
    """

    def __init__(self):
        """Initialize email service with SMTP configuration from env."""
        self.smtp_host = os.getenv("SMTP_HOST", "localhost")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_username = os.getenv("SMTP_USERNAME")
        self.smtp_password = os.getenv("SMTP_PASSWORD")
        self.smtp_use_tls = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
        self.from_email = os.getenv("SMTP_FROM_EMAIL", "hello@tradelink.app")
        self.from_name = os.getenv("SMTP_FROM_NAME", "TradeLink")
        self.frontend_url = os.getenv("FRONTEND_URL", FRONTEND_URL)

    def send_invitation_email(
        self,
        to_email: str,
        contractor_name: str,
        claim_token: str,
        record_count: int
    ) -> bool:
        """
        Send the claim link to the recipient an invitation is locked to.

        Args:
            to_email: Recipient email address
            contractor_name: Display name of the contractor
            claim_token: Token carried by the claim link
            record_count: Number of records waiting to be imported

        Returns:
            True if sent successfully
        """
        link = claim_link(claim_token, self.frontend_url)
        plural = "s" if record_count != 1 else ""
        subject = f"{contractor_name} shared {record_count} home record{plural} with you"

        body = f"""
        <h2>Your home records are ready</h2>

        <p><strong>{contractor_name}</strong> has documented {record_count} item{plural}
        from your recent service so you can keep them in your home profile.</p>

        <p><a href="{link}">Import my records →</a></p>

        <p>This link can only be used once.</p>
        """

        return self._send_email(to=to_email, subject=subject, html_body=body)

    def send_claim_notification(
        self,
        to_email: str,
        customer_name: str,
        imported_count: int
    ) -> bool:
        """Tell a contractor that one of their invitations was claimed."""
        subject = f"✅ {customer_name} imported your records"

        body = f"""
        <h2>Invitation Claimed</h2>

        <p><strong>Customer:</strong> {customer_name}</p>
        <p><strong>Records imported:</strong> {imported_count}</p>

        <p>They've been added to your customer list.</p>

        <p><a href="{self.frontend_url.rstrip('/')}/pro/customers">
            View Customers →
        </a></p>
        """

        return self._send_email(to=to_email, subject=subject, html_body=body)

    def _send_email(self, to: str, subject: str, html_body: str) -> bool:
        """
        Send an email via SMTP.

        Args:
            to: Recipient email address
            subject: Email subject
            html_body: HTML body content

        Returns:
            True if sent successfully
        """
        try:
            # Create message
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = to

            # Add HTML body
            msg.attach(MIMEText(html_body, 'html'))

            # Connect and send
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
                if self.smtp_use_tls:
                    server.starttls()

                if self.smtp_username and self.smtp_password:
                    server.login(self.smtp_username, self.smtp_password)

                server.send_message(msg)

            logger.info(f"Sent email to {to}: {subject}")
            return True

        except Exception as e:
            logger.error(f"Failed to send email to {to}: {e}", exc_info=True)
            return False
