import logging
from typing import List, Tuple

import requests

from court_slot_finder import config
from court_slot_finder.models import SlotPair

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"


def format_slot_pairs_message(chosen: List[Tuple[str, SlotPair]]) -> str:
    """Builds the Markdown message listing one chosen slot pair per date, earliest date first."""
    lines = [
        f"*{date_str}*: {pair.first_start}-{pair.second_start} ({pair.resource})"
        for date_str, pair in sorted(chosen, key=lambda item: item[0])
    ]
    return f"🎾 *Court Slots Ready To Book!* ({len(chosen)})\n\n" + "\n".join(lines)


def send_telegram_message(message: str):
    """Sends a message to the configured Telegram chat."""
    token = config.TELEGRAM_BOT_TOKEN
    chat_id = config.TELEGRAM_CHAT_ID

    if not token or not chat_id:
        logger.warning("Telegram configuration missing. Skipping notification.")
        return

    payload = {
        "chat_id": chat_id,
        "text": message,
        "parse_mode": "Markdown",
        "disable_web_page_preview": True,
    }

    try:
        response = requests.post(TELEGRAM_API_URL.format(token=token), json=payload, timeout=config.REQUEST_TIMEOUT)
        response.raise_for_status()
        logger.info("Telegram notification sent successfully.")
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to send Telegram message: {e}")


def notify_slot_pairs(chosen: List[Tuple[str, SlotPair]]):
    """Sends the chosen slot pairs to Telegram. Does nothing when none were chosen."""
    if not chosen:
        logger.debug("No slot pairs chosen, no notification sent.")
        return
    send_telegram_message(format_slot_pairs_message(chosen))
