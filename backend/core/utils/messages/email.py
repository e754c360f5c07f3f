"""
Mailgun email service for sending emails
"""
import aiohttp
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from jinja2 import Environment, FileSystemLoader, select_autoescape
from core.config import settings
from core.exceptions import ConfigurationException, ExternalServiceException
from core.utils.money import format_price
from schemas.order import logo_filename
import os

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
TEMPLATES_DIR = os.path.join(BASE_DIR, "templates")
MAILGUN_API_BASE = "https://api.mailgun.net/v3"

env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(['html', 'xml'])
)
env.filters["price"] = format_price
env.filters["logo_filename"] = logo_filename

TEMPLATE_MAP = {
    "order_confirmation": "purchase/order_confirmation.html",
}


@dataclass
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


def render_email(template_name: str, context: dict) -> str:
    """Render Jinja2 template with context"""
    try:
        template = env.get_template(template_name)
        return template.render(**context)
    except Exception as e:
        logger.error(f"Template rendering error: {e}")
        raise RuntimeError(f"Template rendering error: {e}")


def render_mail_type(mail_type: str, context: dict) -> str:
    template_name = TEMPLATE_MAP.get(mail_type)
    if not template_name:
        raise RuntimeError(f"No template found for mail_type: {mail_type}")
    return render_email(template_name, context)


def _form_data(
    to_email: str,
    subject: str,
    html_body: str,
    text_body: Optional[str],
    reply_to: Optional[str],
    attachments: List[EmailAttachment],
) -> aiohttp.FormData:
    form = aiohttp.FormData()
    form.add_field("from", settings.MAILGUN_FROM_EMAIL)
    form.add_field("to", to_email)
    form.add_field("subject", subject)
    form.add_field("html", html_body)
    if text_body:
        form.add_field("text", text_body)
    if reply_to:
        form.add_field("h:Reply-To", reply_to)
    for attachment in attachments:
        form.add_field(
            "attachment",
            attachment.content,
            filename=attachment.filename,
            content_type=attachment.content_type,
        )
    return form


async def send_email_mailgun(
    to_email: str,
    subject: str,
    html_body: str,
    text_body: Optional[str] = None,
    reply_to: Optional[str] = None,
    attachments: Optional[List[EmailAttachment]] = None,
) -> Dict[str, Any]:
    """
    Send email using Mailgun API (async)

    Args:
        to_email: Recipient email address
        subject: Subject line
        html_body: Rendered HTML body
        text_body: Optional plain-text alternative
        reply_to: Address customer replies are routed to
        attachments: Files sent as multipart attachments
    """
    if not settings.MAILGUN_API_KEY:
        raise ConfigurationException("MAILGUN_API_KEY")
    if not settings.MAILGUN_DOMAIN:
        raise ConfigurationException("MAILGUN_DOMAIN")

    mailgun_url = f"{MAILGUN_API_BASE}/{settings.MAILGUN_DOMAIN}/messages"
    form = _form_data(to_email, subject, html_body, text_body, reply_to, attachments or [])

    logger.info(f"📤 Sending email via Mailgun to {to_email}...")
    try:
        async with aiohttp.ClientSession() as session:
            async with session.post(
                mailgun_url,
                auth=aiohttp.BasicAuth("api", settings.MAILGUN_API_KEY),
                data=form,
                timeout=aiohttp.ClientTimeout(total=30)
            ) as response:
                if response.status == 200:
                    result = await response.json()
                    logger.info(f"✅ Email sent successfully via Mailgun: {result.get('id')}")
                    return result
                error_text = await response.text()
                logger.error(f"❌ Mailgun error ({response.status}): {error_text}")
                raise ExternalServiceException(
                    message=f"Mailgun API error: {error_text}",
                    service="mailgun",
                    provider_code=str(response.status),
                )

    except asyncio.TimeoutError as e:
        logger.error("❌ Mailgun request timed out.")
        raise ExternalServiceException(message="Mailgun request timed out", service="mailgun") from e

    except aiohttp.ClientError as e:
        logger.error(f"❌ Mailgun request failed: {e}")
        raise ExternalServiceException(message=f"Mailgun request failed: {e}", service="mailgun") from e
