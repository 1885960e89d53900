from dataclasses import dataclass
from html import escape
from typing import Any, Dict

from app.services.validation import parse_date

BOOKING_CONFIRMATION = "booking_confirmation"
PAYMENT_CONFIRMATION = "payment_confirmation"
PAYMENT_FAILED = "payment_failed"

HTML_SHELL = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1>{title}</h1>
    {body}
    <p style="font-size: 14px; color: #64748b;">{footer}</p>
  </div>
</body>
</html>"""


@dataclass
class RenderedEmail:
    subject: str
    text: str
    html: str


def _fmt_date(value: Any) -> str:
    parsed = parse_date(value)
    return parsed.strftime("%B %d, %Y") if parsed else str(value or "")


def _fmt_amount(payload: Dict[str, Any]) -> str:
    amount = payload.get("amount")
    currency = (payload.get("currency") or "usd").upper()
    if amount is None:
        return ""
    return f"{float(amount):.2f} {currency}"


def _rows(pairs) -> str:
    return "".join(
        f'<div><strong>{escape(label)}:</strong> {escape(str(value))}</div>'
        for label, value in pairs if value
    )


def _lines(pairs) -> str:
    return "\n".join(f"{label}: {value}" for label, value in pairs if value)


def _render(subject: str, title: str, intro: str, pairs, footer: str) -> RenderedEmail:
    text = f"{title}\n\n{intro}\n\n{_lines(pairs)}\n\n{footer}\n"
    body = f"<p>{escape(intro)}</p>{_rows(pairs)}"
    html = HTML_SHELL.format(title=escape(title), body=body, footer=escape(footer))
    return RenderedEmail(subject=subject, text=text, html=html)


def customer_email(kind: str, payload: Dict[str, Any], company: str) -> RenderedEmail:
    service = payload.get("serviceName") or "your service"
    booking_id = payload.get("bookingId")

    if kind == PAYMENT_CONFIRMATION:
        return _render(
            f"Payment Received - {service}",
            "Payment Received",
            "Thank you! Your payment has been processed successfully.",
            [("Booking ID", booking_id), ("Service", service), ("Amount", _fmt_amount(payload))],
            f"The {company} Team",
        )

    if kind == PAYMENT_FAILED:
        reason = payload.get("reason") or "The payment could not be completed."
        return _render(
            f"Payment Failed - {service}",
            "Payment Failed",
            "Unfortunately your payment did not go through. No charge was made.",
            [("Booking ID", booking_id), ("Service", service), ("Reason", reason)],
            "You can retry the payment from your booking page or reply to this email.",
        )

    name = payload.get("firstName") or "there"
    return _render(
        f"Booking Confirmation - {service}",
        "Booking Confirmed!",
        f"Hi {name}, your booking request has been received. We'll review it within 24 hours.",
        [
            ("Booking ID", booking_id),
            ("Service", service),
            ("Price Range", payload.get("servicePrice") and f"${payload['servicePrice']}"),
            ("Preferred Date", _fmt_date(payload.get("preferredDate"))),
            ("Preferred Time", payload.get("preferredTime")),
        ],
        f"Best regards, The {company} Team",
    )


def admin_email(kind: str, payload: Dict[str, Any]) -> RenderedEmail:
    service = payload.get("serviceName") or "Unknown service"
    booking_id = payload.get("bookingId")

    if kind == PAYMENT_CONFIRMATION:
        return _render(
            f"Payment Received: {service}",
            "Payment Received",
            "A booking has been paid.",
            [("Booking ID", booking_id), ("Customer", payload.get("email")), ("Amount", _fmt_amount(payload))],
            "No action required.",
        )

    if kind == PAYMENT_FAILED:
        return _render(
            f"Payment Failed: {service}",
            "Payment Failed",
            "A customer's payment attempt failed.",
            [("Booking ID", booking_id), ("Customer", payload.get("email")), ("Reason", payload.get("reason"))],
            "Consider following up with the customer.",
        )

    customer = " ".join(filter(None, [payload.get("firstName"), payload.get("lastName")]))
    return _render(
        f"New Booking: {service}",
        "New Booking Received",
        "A new booking request came in.",
        [
            ("Booking ID", booking_id),
            ("Service", service),
            ("Price", payload.get("servicePrice") and f"${payload['servicePrice']}"),
            ("Date", _fmt_date(payload.get("preferredDate"))),
            ("Time", payload.get("preferredTime")),
            ("Name", customer),
            ("Email", payload.get("email")),
            ("Phone", payload.get("phone")),
            ("Business", payload.get("businessName")),
            ("Message", payload.get("message")),
        ],
        "Action Required: Please review and confirm this booking within 24 hours.",
    )
