"""WhatsApp click-to-chat links.

The chat subsystem never sends WhatsApp messages itself; it only builds the
wa.me deep link the widget opens in a new tab.
"""

import re
from urllib.parse import quote

from app.config import Settings, get_settings

WHATSAPP_BASE_URL = "https://wa.me"


def format_whatsapp_number(phone: str) -> str:
    """Format a phone number for wa.me.

    Args:
        phone: Phone number in any common format ("+94 741 415 812",
            "whatsapp:+94741415812", ...)

    Returns:
        Country code and number as digits only
    """
    if phone.startswith("whatsapp:"):
        phone = phone[9:]
    return re.sub(r"\D", "", phone)


def build_whatsapp_link(phone: str, text: str | None = None) -> str:
    """Build a click-to-chat URL with an optional prefilled message."""
    number = format_whatsapp_number(phone)
    if not number:
        raise ValueError("Missing WhatsApp contact number")
    url = f"{WHATSAPP_BASE_URL}/{number}"
    if text:
        url = f"{url}?text={quote(text, safe='')}"
    return url


def contact_link(settings: Settings | None = None) -> str:
    """The configured support contact link."""
    settings = settings or get_settings()
    return build_whatsapp_link(settings.whatsapp_contact_number, settings.whatsapp_prefill_text)
