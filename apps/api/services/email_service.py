"""
Email Service

Invitation and notification emails, delivered through the Resend REST API.
Sending never raises: failures are logged and reported as False so the
request that triggered the email still succeeds.
"""

from datetime import datetime
from html import escape
from typing import Optional
import logging

import requests

from core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending emails"""

    def __init__(self):
        self.api_key = settings.RESEND_API_KEY
        self.api_url = settings.RESEND_API_URL
        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME
        self.enabled = settings.EMAIL_ENABLED and bool(self.api_key)
        self.timeout = settings.EXTERNAL_API_TIMEOUT

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email.

        Returns True if sent successfully, False otherwise.
        """
        if not self.enabled:
            logger.info(f"Email disabled, would send to {to_email}: {subject}")
            return False

        payload = {
            "from": f"{self.from_name} <{self.from_email}>",
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        if text_content:
            payload["text"] = text_content

        try:
            response = requests.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Error sending email to {to_email}: {str(e)}")
            return False

        logger.info(f"Email sent to {to_email}: {subject}")
        return True

    def send_client_invitation(self, to_email: str, client_name: str, coach_name: str, signup_url: str) -> bool:
        subject = f"{coach_name} invited you to Kava Training"
        html = f"""
        <div style="font-family: sans-serif; max-width: 560px; margin: 0 auto;">
          <h2>Hi {escape(client_name)},</h2>
          <p>{escape(coach_name)} has invited you to join Kava Training, where you'll find
          your meal plans, workouts, supplements and check-ins in one place.</p>
          <p><a href="{escape(signup_url, quote=True)}"
                style="display:inline-block;padding:12px 24px;background:#00CC03;color:#fff;
                       text-decoration:none;border-radius:6px;">Create your account</a></p>
          <p style="color:#666;font-size:13px;">If the button doesn't work, copy this link:<br>
          {escape(signup_url)}</p>
        </div>
        """
        text = f"{coach_name} invited you to Kava Training. Create your account: {signup_url}"
        return self.send_email(to_email, subject, html, text)

    def send_check_in_form_notification(
        self,
        to_email: str,
        client_name: str,
        coach_name: str,
        form_title: str,
        expires_at: Optional[datetime] = None,
    ) -> bool:
        link = f"{settings.WEB_APP_BASE_URL.rstrip('/')}/dashboard"
        due = f"<p>Please respond by {expires_at:%B %d, %Y}.</p>" if expires_at else ""
        subject = f"New check-in form from {coach_name}"
        html = f"""
        <div style="font-family: sans-serif; max-width: 560px; margin: 0 auto;">
          <h2>Hi {escape(client_name)},</h2>
          <p>{escape(coach_name)} sent you a check-in form: <strong>{escape(form_title)}</strong>.</p>
          {due}
          <p><a href="{escape(link, quote=True)}">Open your dashboard</a> to answer it.</p>
        </div>
        """
        return self.send_email(to_email, subject, html)

    def send_coach_update_notification(self, to_email: str, client_name: str, coach_name: str, message: str) -> bool:
        link = f"{settings.WEB_APP_BASE_URL.rstrip('/')}/dashboard"
        subject = f"New update from {coach_name}"
        html = f"""
        <div style="font-family: sans-serif; max-width: 560px; margin: 0 auto;">
          <h2>Hi {escape(client_name)},</h2>
          <p>{escape(coach_name)} posted an update for you:</p>
          <blockquote style="border-left:3px solid #00CC03;padding-left:12px;">{escape(message)}</blockquote>
          <p><a href="{escape(link, quote=True)}">View it on your dashboard</a></p>
        </div>
        """
        return self.send_email(to_email, subject, html, message)
