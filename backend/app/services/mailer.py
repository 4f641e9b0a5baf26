import logging
import smtplib
from email.mime.text import MIMEText

from app.core.settings import settings

logger = logging.getLogger(__name__)


class Mailer:
    """Plain-text SMTP sender. Raises on failure; callers decide whether to care."""

    def __init__(
        self,
        host: str = settings.SMTP_HOST,
        port: int = settings.SMTP_PORT,
        username: str | None = settings.SMTP_USERNAME,
        password: str | None = settings.SMTP_PASSWORD,
        use_tls: bool = settings.SMTP_USE_TLS,
        from_addr: str = settings.MAIL_FROM,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_addr = from_addr

    def send_mail(self, to: str, subject: str, body: str) -> None:
        msg = MIMEText(body, "plain")
        msg["Subject"] = subject
        msg["From"] = f"Bottom Time <{self.from_addr}>"
        msg["To"] = to

        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password or "")
            server.sendmail(self.from_addr, [to], msg.as_string())
        logger.debug("Sent %r to %s", subject, to)


def new_friend_request_email(requester_name: str, friend_username: str, friend_friendly_name: str) -> str:
    return (
        f"Hi {friend_friendly_name},\n\n"
        f"{requester_name} would like to add you as a dive buddy on Bottom Time.\n\n"
        f"Review the request here: {settings.SITE_URL}users/{friend_username}/friends"
        "?type=requests-incoming\n"
    )


def approve_friend_request_email(requester_friendly_name: str, friend_username: str, friend_name: str) -> str:
    return (
        f"Hi {requester_friendly_name},\n\n"
        f"{friend_name} accepted your dive buddy request.\n\n"
        f"See their profile: {settings.SITE_URL}users/{friend_username}\n"
    )


def reject_friend_request_email(requester_friendly_name: str, friend_name: str, reason: str | None) -> str:
    body = f"Hi {requester_friendly_name},\n\n{friend_name} declined your dive buddy request.\n"
    if reason:
        body += f"\nThey left a note: {reason}\n"
    return body
