"""
Ariya Backend — Mail Sender
=============================

Delivery of verification and password-reset links. The default
LoggingMailSender only writes the message to the log and keeps nothing;
a production SMTP or API sender implements the same interface.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailMessage:
    to: str
    subject: str
    body: str
    link: str


class MailSender(ABC):
    @abstractmethod
    async def send(self, message: MailMessage) -> None:
        """Deliver `message`. Failures raise; callers decide whether to swallow."""


class LoggingMailSender(MailSender):
    async def send(self, message: MailMessage) -> None:
        # The link embeds a single-use token; keep it at DEBUG
        logger.info("Mail queued to %s: %s", message.to, message.subject)
        logger.debug("Mail link for %s: %s", message.to, message.link)


def verification_message(email: str, name: str, link: str) -> MailMessage:
    return MailMessage(
        to=email,
        subject="Verify your Ariya account",
        body=f"Hi {name},\n\nConfirm your email address to start planning: {link}\n",
        link=link,
    )


def password_reset_message(email: str, name: str, link: str) -> MailMessage:
    return MailMessage(
        to=email,
        subject="Reset your Ariya password",
        body=(
            f"Hi {name},\n\nUse this link to choose a new password: {link}\n"
            "If you did not request a reset you can ignore this email.\n"
        ),
        link=link,
    )
