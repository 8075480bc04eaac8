import logging

from django.conf import settings
from django.utils.timezone import now
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

logger = logging.getLogger(__name__)


def build_email_html(title, greeting, message, footer):
    """Shared layout for every outgoing email (newsletter, notifications, password reset)."""
    site_name = settings.SITE_NAME
    greeting_html = f"<p>Habari <strong>{greeting}</strong>,</p>" if greeting else ""
    html = f"""
<div style="font-family:Arial, sans-serif; background-color:#f4f6f8; padding:20px;">
  <div style="max-width:600px; margin:auto; background-color:#ffffff; border-radius:8px; overflow:hidden; border:1px solid #ddd;">
    <div style="background-color:#1e7b4f; color:#fff; padding:15px; text-align:center; font-size:20px;">{site_name}</div>
    <div style="padding:20px; color:#333;">
      <h2 style="color:#1e7b4f;">{title}</h2>
      {greeting_html}
      <p>{message}</p>
      <p>{footer}</p>
    </div>
    <div style="background-color:#1e7b4f; color:#fff; text-align:center; padding:10px; font-size:12px;">
      &copy; {now().year} {site_name}. All rights reserved.
    </div>
  </div>
</div>
"""
    return html


def frontend_url(path):
    return f"{settings.FRONTEND_URL}/{path.lstrip('/')}"


def send_email_via_sendgrid(subject, message, to_email):
    """Send an email using SendGrid API client. Delivery is best-effort: failures are logged, never raised."""
    api_key = settings.SENDGRID_API_KEY
    if not api_key:
        logger.info("SENDGRID_API_KEY not configured, skipping email %r to %s", subject, to_email)
        return False

    email = Mail(
        from_email=settings.DEFAULT_FROM_EMAIL,   # must be verified in SendGrid
        to_emails=to_email,
        subject=subject,
        html_content=message
    )
    try:
        sg = SendGridAPIClient(api_key)
        response = sg.send(email)
        logger.info("Email %r sent to %s (status %s)", subject, to_email, response.status_code)
        return True
    except Exception:
        logger.exception("Error sending email %r to %s", subject, to_email)
        return False
