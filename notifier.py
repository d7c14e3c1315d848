import logging
from email.message import EmailMessage

import aiosmtplib

import config

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Delivers verification codes by email.

    Sending is fire-and-forget: failures are logged and never reach the
    request that triggered them. Without an SMTP host the message is only
    logged, which is what local development and the test suite rely on.
    """

    def __init__(self, host=None, port=587, username=None, password=None,
                 use_tls=True, sender="no-reply@example.com"):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender

    def build_message(self, email: str, code: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = email
        message["Subject"] = "Your verification code"
        message.set_content(
            f"Your verification code is {code}.\n\n"
            "If you did not request this code you can ignore this email."
        )
        return message

    async def send_verification_code(self, email: str, code: str):
        if not self.host:
            logger.debug("SMTP not configured, verification code for %s: %s", email, code)
            return

        message = self.build_message(email, code)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=self.use_tls,
            )
            logger.info("Verification code sent to %s", email)
        except aiosmtplib.SMTPException:
            logger.exception("Failed to send verification code to %s", email)
        except OSError:
            logger.exception("SMTP server %s unreachable", self.host)


def get_notifier() -> EmailNotifier:
    return EmailNotifier(
        host=config.SMTP_HOST,
        port=config.SMTP_PORT,
        username=config.SMTP_USERNAME,
        password=config.SMTP_PASSWORD,
        use_tls=config.SMTP_USE_TLS,
        sender=config.MAIL_FROM,
    )
