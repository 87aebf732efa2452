import logging
import smtplib
from datetime import date
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.core.config import settings
from app.core.timeutils import format_minutes

logger = logging.getLogger(__name__)


def _send_email_sync(to_email: str, subject: str, html_body: str) -> bool:
    """Send email via SMTP (blocking). Use from background task."""
    if not settings.email_enabled:
        logger.debug("Email disabled (SMTP not configured), skipping send")
        return False
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = to_email
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.from_email, [to_email], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        # the booking is already confirmed; a lost email is only logged
        logger.exception("Failed to send email to %s: %s", to_email, e)
        return False
    logger.info("Email sent to %s", to_email)
    return True


def _html_escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def build_booking_confirmation_html(
    customer_name: str,
    provider_name: str,
    day: date,
    start_time: int,
    end_time: int,
    services: list[str],
    amount: int,
    currency: str,
    receipt_url: str | None = None,
) -> str:
    """Build HTML body for a paid booking confirmation. Inputs are escaped here."""
    date_str = day.strftime("%A, %B %d, %Y")
    time_str = f"{format_minutes(start_time)} - {format_minutes(end_time)}"
    services_str = _html_escape(", ".join(services)) or "Appointment"
    price_str = f"{amount / 100:.2f} {currency.upper()}"
    receipt_section = ""
    if receipt_url:
        receipt_section = (
            f'<p style="margin:0 0 16px 0;font-size:14px;">'
            f'<a href="{_html_escape(receipt_url)}" style="color:#2563eb;">View your receipt</a></p>'
        )
    return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Booking Confirmation</title>
</head>
<body style="margin:0;padding:0;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background-color:#f3f4f6;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="background-color:#f3f4f6;">
    <tr>
      <td align="center" style="padding:40px 16px;">
        <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width:560px;background:#ffffff;border-radius:12px;overflow:hidden;">
          <tr>
            <td style="padding:32px 32px 24px 32px;">
              <h1 style="margin:0 0 8px 0;font-size:22px;font-weight:600;color:#111827;">Booking Confirmed</h1>
              <p style="margin:0 0 24px 0;font-size:15px;color:#6b7280;">Hi {_html_escape(customer_name) or 'there'}, your appointment with {_html_escape(provider_name)} is paid and confirmed.</p>
              <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="background:#f9fafb;border-radius:8px;margin-bottom:24px;">
                <tr>
                  <td style="padding:20px 24px;">
                    <p style="margin:0 0 8px 0;font-size:12px;text-transform:uppercase;color:#6b7280;">Date</p>
                    <p style="margin:0;font-size:16px;font-weight:600;color:#111827;">{date_str}</p>
                    <p style="margin:12px 0 0 0;font-size:12px;text-transform:uppercase;color:#6b7280;">Time</p>
                    <p style="margin:0;font-size:16px;font-weight:600;color:#111827;">{time_str}</p>
                    <p style="margin:12px 0 0 0;font-size:12px;text-transform:uppercase;color:#6b7280;">Service</p>
                    <p style="margin:0;font-size:16px;font-weight:600;color:#111827;">{services_str}</p>
                    <p style="margin:12px 0 0 0;font-size:12px;text-transform:uppercase;color:#6b7280;">Paid</p>
                    <p style="margin:0;font-size:16px;font-weight:600;color:#111827;">{price_str}</p>
                  </td>
                </tr>
              </table>
              {receipt_section}
              <p style="margin:0 0 8px 0;font-size:14px;color:#374151;">If you need to cancel, you can do so from your appointments page.</p>
            </td>
          </tr>
          <tr>
            <td style="padding:24px 32px 32px 32px;background:#f9fafb;border-top:1px solid #e5e7eb;">
              <p style="margin:0 0 4px 0;font-size:13px;font-weight:600;color:#111827;">{settings.site_name}</p>
              <p style="margin:0;font-size:13px;color:#6b7280;">{settings.contact_email}</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def send_booking_confirmation_email(
    to_email: str,
    customer_name: str | None,
    provider_name: str,
    day: date,
    start_time: int,
    end_time: int,
    services: list[str],
    amount: int,
    currency: str,
    receipt_url: str | None = None,
) -> bool:
    """Compose and send the booking confirmation (call from background task)."""
    subject = f"{settings.site_name} - Booking Confirmed"
    html = build_booking_confirmation_html(
        customer_name=customer_name or "",
        provider_name=provider_name,
        day=day,
        start_time=start_time,
        end_time=end_time,
        services=services,
        amount=amount,
        currency=currency,
        receipt_url=receipt_url,
    )
    return _send_email_sync(to_email, subject, html)
