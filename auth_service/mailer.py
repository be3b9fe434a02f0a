"""Sends one-time passwords by email over SMTP."""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from fastapi import Depends
from fastapi.concurrency import run_in_threadpool

from common.config import Settings, get_settings

logger = logging.getLogger(__name__)

OTP_SUBJECT = "Your OTP for AI-LCA Tool"
SMTP_TIMEOUT_SECONDS = 20


class OTPMailer:
    """Delivers OTP codes. `send_otp` reports success as a bool and never raises."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _build_message(self, recipient: str, code: str) -> MIMEMultipart:
        minutes = self.settings.otp_expiration_minutes
        body_text = f"Your OTP is: {code}. It is valid for {minutes} minutes."
        body_html = (
            "<html><body style=\"font-family: Arial, sans-serif;\">"
            "<h2>AI-LCA Tool verification</h2>"
            f"<p>Your OTP is: <strong style=\"font-size: 24px; letter-spacing: 4px;\">{code}</strong></p>"
            f"<p>It is valid for {minutes} minutes. If you did not request it, ignore this email.</p>"
            "</body></html>"
        )

        message = MIMEMultipart("alternative")
        message["Subject"] = OTP_SUBJECT
        message["From"] = self.settings.email_user
        message["To"] = recipient
        message.attach(MIMEText(body_text, "plain"))
        message.attach(MIMEText(body_html, "html"))
        return message

    def _deliver(self, recipient: str, message: MIMEMultipart) -> None:
        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=SMTP_TIMEOUT_SECONDS) as smtp:
            smtp.starttls()
            smtp.login(self.settings.email_user, self.settings.email_pass)
            smtp.sendmail(self.settings.email_user, [recipient], message.as_string())

    async def send_otp(self, email: str, code: str) -> bool:
        if not self.settings.email_user or not self.settings.email_pass:
            logger.error("Cannot send OTP: EMAIL_USER/EMAIL_PASS are not configured.")
            return False

        message = self._build_message(email, code)
        try:
            # smtplib blocks; keep it off the event loop.
            await run_in_threadpool(self._deliver, email, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(f"Error sending OTP email to {email}: {exc}")
            return False

        logger.info(f"OTP email sent to {email}")
        return True


def get_mailer(settings: Settings = Depends(get_settings)) -> OTPMailer:
    return OTPMailer(settings)
