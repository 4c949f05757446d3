"""
OpsLink Hosting - Email Service
Plain-text customer emails over SMTP
"""
import logging
import smtplib
from email.mime.text import MIMEText

from opslink.config import Settings

logger = logging.getLogger(__name__)


class EmailService:

    def __init__(self, settings: Settings):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.user = settings.SMTP_USER
        self.password = settings.SMTP_PASSWORD
        self.sender = settings.SMTP_FROM
        self.enabled = bool(self.user and self.password)

    def send(self, to: str, subject: str, text: str) -> bool:
        """Send an email. Returns False instead of raising."""
        if not self.enabled:
            logger.debug(f"SMTP not configured, skipping email to {to}: {subject}")
            return False
        try:
            msg = MIMEText(text, "plain", "utf-8")
            msg["Subject"] = subject
            msg["From"] = self.sender
            msg["To"] = to

            with smtplib.SMTP(self.host, self.port, timeout=15) as server:
                server.starttls()
                server.login(self.user, self.password)
                server.sendmail(self.sender, [to], msg.as_string())

            logger.info(f"Email sent to {to}: {subject}")
            return True
        except Exception as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False

    def send_server_ready(self, to: str, plan: str) -> bool:
        return self.send(
            to,
            "Server Ready",
            f"Your {plan} server is now active. You can log in with your panel password.",
        )

    def send_provisioning_failed(self, to: str, plan: str) -> bool:
        return self.send(
            to,
            "Server Setup Delayed",
            f"We received your payment, but your {plan} server could not be created automatically. "
            "Our team has been notified and will finish the setup manually.",
        )
