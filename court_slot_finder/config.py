import logging
import os
from typing import Dict, List

logger = logging.getLogger(__name__)


def _split_env_list(name: str, default: str) -> List[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# --- File Paths ---
DATA_DIR = os.environ.get("DATA_DIR", "public/data")
REPORT_FILE = os.path.join(DATA_DIR, "report.json")
PATTERN_FILE = os.environ.get("PATTERN_FILE", os.path.join(DATA_DIR, "booking-patterns.json"))
PATTERN_MAX_AGE_DAYS = int(os.environ.get("PATTERN_MAX_AGE_DAYS", "90"))

# --- Calendar source ---
# A file path or http(s) URL of a JSON document holding raw cell records.
# "{date}" is replaced by the target date.
CALENDAR_SOURCE = os.environ.get("CALENDAR_SOURCE")
REQUEST_TIMEOUT = int(os.environ.get("REQUEST_TIMEOUT", "10"))

# --- Booking preferences ---
DAYS_AHEAD = int(os.environ.get("DAYS_AHEAD", "20"))
TARGET_TIMES: List[str] = _split_env_list("TARGET_TIMES", "14:00")
PREFERRED_COURTS: List[str] = _split_env_list("PREFERRED_COURTS", "")
BOOKING_DURATION_MINUTES = 60

# --- Matrix ---
# Fewer cells than this means the grid most likely did not render completely.
MATRIX_MIN_CELLS = int(os.environ.get("MATRIX_MIN_CELLS", "50"))

# Headers to mimic a browser
COMMON_HEADERS: Dict[str, str] = {
    "User-Agent": os.environ.get(
        "SCRAPER_USER_AGENT",
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/129.0.0.0 Safari/537.36"
        ),
    ),
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": os.environ.get("SCRAPER_ACCEPT_LANGUAGE", "de-DE,de;q=0.9,en;q=0.8"),
    "Connection": "keep-alive",
}

# --- Telegram ---
TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")
if not TELEGRAM_BOT_TOKEN or not TELEGRAM_CHAT_ID:
    logger.warning("Telegram configuration incomplete. Skipping notifications.")
