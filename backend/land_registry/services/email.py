"""Outbound email for account and workflow notifications"""
import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

from land_registry.config import settings

logger = logging.getLogger(__name__)

ACCENT_COLOR = "#2563eb"


def _portal_link(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    if path.startswith("http://") or path.startswith("https://"):
        return path
    return f"{settings.FRONTEND_URL.rstrip('/')}/{path.lstrip('/')}"


def _render_html(heading: str, paragraphs: list, link: Optional[str] = None, link_label: str = "") -> str:
    """Wrap content in the shared email layout"""
    body = "\n".join(f"<p>{p}</p>" for p in paragraphs)
    button = ""
    if link:
        button = (
            f'<p style="text-align: center; margin: 30px 0;">'
            f'<a href="{link}" style="background-color: {ACCENT_COLOR}; color: white; padding: 12px 24px; '
            f'text-decoration: none; border-radius: 4px; display: inline-block;">{link_label}</a></p>'
        )
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <h2 style="color: {ACCENT_COLOR};">{heading}</h2>
    {body}
    {button}
    <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 30px 0;">
    <p style="color: #6b7280; font-size: 12px;">Sent by {settings.APP_NAME}. Replies are not monitored.</p>
  </div>
</body>
</html>"""


class EmailService:
    """Sends mail through the configured SMTP relay"""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.use_tls = settings.SMTP_TLS
        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME

    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None
    ) -> bool:
        """
        Send one message.

        Returns False instead of raising when SMTP is not configured or the
        relay refuses the message; callers decide whether to retry.
        """
        if not self.is_configured():
            logger.warning(f"SMTP not configured; not sending '{subject}' to {to_email}")
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        try:
            if self.use_tls:
                server = smtplib.SMTP(self.smtp_host, self.smtp_port)
                server.starttls()
            else:
                server = smtplib.SMTP_SSL(self.smtp_host, self.smtp_port)

            if self.smtp_user and self.smtp_password:
                server.login(self.smtp_user, self.smtp_password)

            server.sendmail(self.from_email, to_email, msg.as_string())
            server.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP error sending '{subject}' to {to_email}: {e}")
            return False

        logger.info(f"Email '{subject}' sent to {to_email}")
        return True

    def send_notification_email(
        self,
        to_email: str,
        title: str,
        message: str,
        action_url: Optional[str] = None
    ) -> bool:
        """Mail a stored notification; ``action_url`` is a portal path such as /property/7/payment"""
        link = _portal_link(action_url)
        html_body = _render_html(title, [message], link, "View in portal")

        text_body = f"{title}\n\n{message}\n"
        if link:
            text_body += f"\n{link}\n"

        return self.send_email(to_email, f"{settings.APP_NAME} - {title}", html_body, text_body)

    def send_password_reset_email(self, to_email: str, reset_token: str, reset_url: str = None) -> bool:
        reset_link = f"{reset_url or _portal_link('/reset-password')}?token={reset_token}"
        paragraphs = [
            f"A password reset was requested for your {settings.APP_NAME} account.",
            "The link below is valid for 24 hours. If you did not ask for this, ignore this email.",
        ]
        html_body = _render_html("Password Reset Request", paragraphs, reset_link, "Choose a new password")
        text_body = "Password Reset Request\n\n" + "\n".join(paragraphs) + f"\n\n{reset_link}\n"

        return self.send_email(to_email, f"{settings.APP_NAME} - Password Reset Request", html_body, text_body)


_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get or create the email service singleton"""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
