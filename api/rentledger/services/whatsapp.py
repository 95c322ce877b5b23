"""
WhatsApp relay for rental notifications.

Posts a formatted notice to the whatsapp-bot service on the private Docker
network.  Only active users with a phone number on file are messaged.  A relay
outage is logged and reported as ``False``; the in-app notification is already
stored by then, so nothing upstream has to fail.
"""

import logging

import requests

from rentledger.core.config import settings
from rentledger.models.user import User

logger = logging.getLogger(__name__)


def format_notice(title: str, message: str) -> str:
    """WhatsApp markdown: bold title line, plain body."""
    return f"*{title}*\n{message}"


def send_whatsapp(user: User, title: str, message: str) -> bool:
    """Relay one notice to ``user``; True only when the bot accepted it."""
    if not settings.whatsapp_enabled:
        return False
    if not user.phone or not user.is_active:
        logger.debug("No WhatsApp for user %s (no phone or inactive)", user.id)
        return False
    try:
        resp = requests.post(
            f"{settings.whatsapp_bot_url}/send",
            json={"to": user.phone, "message": format_notice(title, message)},
            timeout=10,
        )
    except requests.RequestException as exc:
        logger.warning("WhatsApp relay unreachable for user %s: %s", user.id, exc)
        return False
    if resp.status_code != 200:
        logger.warning(
            "WhatsApp relay refused notice for user %s (%d): %s",
            user.id, resp.status_code, resp.text[:200],
        )
        return False
    return True
