import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Any, Dict, Optional

import requests

from app.core.logger import logger
from app.services import email_templates
from app.services.email_templates import BOOKING_CONFIRMATION

REQUEST_TIMEOUT = 10


class EmailDeliveryError(Exception):
    pass


class SendGridProvider:
    name = "sendgrid"
    url = "https://api.sendgrid.com/v3/mail/send"

    def __init__(self, api_key: str, from_email: str, from_name: str):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name

    def send(self, to: str, subject: str, html: str, text: str) -> None:
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text},
                {"type": "text/html", "value": html},
            ],
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        response = requests.post(self.url, json=payload, headers=headers, timeout=REQUEST_TIMEOUT)
        if response.status_code not in (200, 202):
            raise EmailDeliveryError(f"SendGrid error {response.status_code}: {response.text}")


class ResendProvider:
    name = "resend"
    url = "https://api.resend.com/emails"

    def __init__(self, api_key: str, from_email: str):
        self.api_key = api_key
        self.from_email = from_email

    def send(self, to: str, subject: str, html: str, text: str) -> None:
        payload = {"from": self.from_email, "to": [to], "subject": subject, "html": html, "text": text}
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        response = requests.post(self.url, json=payload, headers=headers, timeout=REQUEST_TIMEOUT)
        if not response.ok:
            raise EmailDeliveryError(f"Resend error {response.status_code}: {response.text}")


class SmtpProvider:
    name = "smtp"

    def __init__(self, server: str, port: int, username: str, password: str, from_email: Optional[str] = None):
        self.server = server
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email or username

    def send(self, to: str, subject: str, html: str, text: str) -> None:
        msg = MIMEMultipart("alternative")
        msg['From'] = self.from_email
        msg['To'] = to
        msg['Subject'] = subject
        msg.attach(MIMEText(text, 'plain'))
        msg.attach(MIMEText(html, 'html'))

        server = smtplib.SMTP(self.server, self.port, timeout=REQUEST_TIMEOUT)
        try:
            server.starttls()
            server.login(self.username, self.password)
            server.sendmail(self.from_email, to, msg.as_string())
        finally:
            server.quit()


def build_email_provider(settings):
    """Picks the email backend named by EMAIL_PROVIDER; None when it is unknown or lacks credentials."""
    provider = (settings.EMAIL_PROVIDER or "").lower()

    if provider == "sendgrid" and settings.SENDGRID_API_KEY:
        return SendGridProvider(settings.SENDGRID_API_KEY, settings.FROM_EMAIL, settings.FROM_NAME)
    if provider == "resend" and settings.RESEND_API_KEY:
        return ResendProvider(settings.RESEND_API_KEY, settings.FROM_EMAIL)
    if provider == "smtp" and settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
        return SmtpProvider(settings.SMTP_SERVER, settings.SMTP_PORT, settings.SMTP_USERNAME,
                            settings.SMTP_PASSWORD, settings.FROM_EMAIL)

    logger.warning(f"⚠️ Email provider '{provider}' unsupported or missing credentials, emails disabled")
    return None


class Notifier:
    """
    Best-effort fan-out of booking and payment events to email and CRM.

    Each channel fails on its own: an email outage does not stop the CRM call
    and nothing is ever raised back to the caller.
    """

    def __init__(self, email_provider=None, crm_provider=None, admin_email: Optional[str] = None,
                 company_name: str = "One-Hour Services"):
        self.email_provider = email_provider
        self.crm_provider = crm_provider
        self.admin_email = admin_email
        self.company_name = company_name

    def notify(self, kind: str, payload: Dict[str, Any]) -> None:
        kind = kind or BOOKING_CONFIRMATION
        self.send_emails(kind, payload)
        if kind == BOOKING_CONFIRMATION:
            self.add_to_crm(payload)

    def send_emails(self, kind: str, payload: Dict[str, Any]) -> bool:
        if not self.email_provider:
            logger.info(f"ℹ️ No email provider configured, skipping {kind} emails.")
            return False

        sent = True
        to_customer = payload.get("email")
        if to_customer:
            sent &= self._deliver(to_customer, email_templates.customer_email, kind, payload, self.company_name)
        else:
            logger.warning(f"⚠️ No customer email on {kind} payload, customer email skipped")

        if self.admin_email:
            sent &= self._deliver(self.admin_email, email_templates.admin_email, kind, payload)
        return sent

    def add_to_crm(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.crm_provider:
            logger.info("ℹ️ No CRM provider configured")
            return None
        try:
            result = self.crm_provider.add_lead(payload)
            logger.info(f"✅ Lead for booking {payload.get('bookingId')} added to {self.crm_provider.name}: {result.get('id')}")
            return result
        except Exception as e:
            logger.error(f"❌ CRM integration error ({self.crm_provider.name}): {e}")
            return None

    def _deliver(self, to: str, render, *args) -> bool:
        try:
            rendered = render(*args)
            self.email_provider.send(to, rendered.subject, rendered.html, rendered.text)
            logger.info(f"✅ Email sent to {to} with subject: '{rendered.subject}'")
            return True
        except Exception as e:
            logger.error(f"❌ Email sending error ({self.email_provider.name}) to {to}: {e}")
            return False
