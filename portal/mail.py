"""Outbound mail (password reset, contact form) over SMTP."""

from __future__ import annotations

import logging
import os
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from functools import lru_cache
from typing import Optional

from portal.errors import MailDeliveryError

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


@dataclass(frozen=True)
class MailConfig:
    smtp_host: Optional[str]
    smtp_port: int
    smtp_user: Optional[str]
    smtp_password: Optional[str]
    smtp_starttls: bool
    mail_from: str
    contact_email: str

    @property
    def enabled(self) -> bool:
        return bool(self.smtp_host)


@lru_cache(maxsize=1)
def load_mail_config() -> MailConfig:
    port_raw = (os.getenv("SMTP_PORT") or "").strip() or "587"
    try:
        port = int(port_raw)
    except ValueError:
        port = 587
    mail_from = (os.getenv("MAIL_FROM") or "").strip() or "portal@localhost"
    return MailConfig(
        smtp_host=(os.getenv("SMTP_HOST") or "").strip() or None,
        smtp_port=port,
        smtp_user=(os.getenv("SMTP_USER") or "").strip() or None,
        smtp_password=(os.getenv("SMTP_PASSWORD") or "").strip() or None,
        smtp_starttls=_env_bool("SMTP_STARTTLS", True),
        mail_from=mail_from,
        contact_email=(os.getenv("CONTACT_EMAIL") or "").strip() or mail_from,
    )


class Mailer:
    def __init__(self, cfg: MailConfig) -> None:
        self.cfg = cfg

    def send(self, *, to: str, subject: str, text: str, reply_to: Optional[str] = None) -> None:
        """
        Send a plain-text message.

        Without SMTP_HOST the message is logged instead of delivered (local development).

        Raises:
            MailDeliveryError: If the SMTP conversation fails
        """
        msg = EmailMessage()
        msg["From"] = self.cfg.mail_from
        msg["To"] = to
        msg["Subject"] = subject
        if reply_to:
            msg["Reply-To"] = reply_to
        msg.set_content(text)

        if not self.cfg.enabled:
            logger.info("Mail delivery disabled (SMTP_HOST unset); to=%s subject=%r", to, subject)
            return

        try:
            with smtplib.SMTP(self.cfg.smtp_host, self.cfg.smtp_port, timeout=10) as smtp:
                if self.cfg.smtp_starttls:
                    smtp.starttls()
                if self.cfg.smtp_user and self.cfg.smtp_password:
                    smtp.login(self.cfg.smtp_user, self.cfg.smtp_password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Mail delivery to %s failed: %s", to, str(e))
            raise MailDeliveryError(str(e)) from e
        logger.info("Sent mail to=%s subject=%r", to, subject)
