import json
import logging
import re
from typing import Callable, Dict, Iterable, List

import cloudscraper

from court_slot_finder import config, timeutil
from court_slot_finder.errors import CellSourceError, NoCalendarDataError
from court_slot_finder.models import Cell, CellState

logger = logging.getLogger(__name__)

COURT_CLASS_PATTERN = re.compile(r"court-?(\d+|[a-z]+)", re.IGNORECASE)
DATE_CLASS_PATTERN = re.compile(r"(\d{4}-\d{2}-\d{2})")
TIME_CLASS_PATTERN = re.compile(r"(\d{1,2}:\d{2})")


def normalize_state(raw: str) -> CellState:
    """Classifies a raw state attribute or class string."""
    normalized = (raw or "").lower()
    # "unavailable" contains "available", so it has to be checked first.
    if "unavailable" in normalized or "blocked" in normalized:
        return CellState.UNAVAILABLE
    if "free" in normalized or "available" in normalized:
        return CellState.FREE
    if "booked" in normalized or "occupied" in normalized:
        return CellState.BOOKED
    return CellState.UNKNOWN


def _match_class(pattern: re.Pattern, class_name: str) -> str:
    match = pattern.search(class_name)
    return match.group(1) if match else ""


def _build_selector(record: Dict[str, str], court: str, date: str, start: str) -> str:
    if record.get("data-court") and record.get("data-date") and record.get("data-start"):
        return f"td[data-court='{court}'][data-date='{date}'][data-start='{start}']"
    if record.get("id"):
        return f"#{record['id']}"
    class_name = record.get("class", "")
    return f".{class_name.split()[0]}" if class_name.strip() else ""


def cell_from_record(record: Dict[str, str]) -> Cell | None:
    """Turns one raw attribute record into a Cell.

    Court, date and start fall back to patterns in the class string when the
    data attributes are missing. Returns None when any of them stays unknown.
    """
    class_name = record.get("class", "") or ""
    court = record.get("data-court") or _match_class(COURT_CLASS_PATTERN, class_name)
    date = record.get("data-date") or _match_class(DATE_CLASS_PATTERN, class_name)
    start = record.get("data-start") or _match_class(TIME_CLASS_PATTERN, class_name)

    if not (court and date and start):
        logger.debug(f"Dropping record without court/date/start: {record}")
        return None

    if not timeutil.is_valid_date(date) or not timeutil.is_valid_time(start):
        logger.warning(f"Dropping record with malformed date or time: {date} {start}")
        return None

    return Cell(
        resource=court,
        date=date,
        start=timeutil.normalize_time(start),
        state=normalize_state(record.get("data-state") or class_name),
        source_selector=_build_selector(record, court, date, start),
        class_name=class_name,
    )


def parse_cells(records: Iterable[Dict[str, str]]) -> List[Cell]:
    """Parses raw records, keeping only usable cells.

    Raises:
        NoCalendarDataError: if no record produced a cell.
    """
    cells = []
    dropped = 0
    for record in records:
        cell = cell_from_record(record)
        if cell is None:
            dropped += 1
            continue
        cells.append(cell)

    if dropped:
        logger.warning(f"Dropped {dropped} unusable calendar records")
    if not cells:
        raise NoCalendarDataError("No usable calendar cells found in source data")

    logger.debug(f"Parsed {len(cells)} calendar cells")
    return cells


def _records_from_document(data) -> List[Dict[str, str]]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("cells"), list):
        return data["cells"]
    logger.error("Unexpected JSON format. 'cells' key missing.")
    logger.debug(f"Document: {data}")
    return []


def load_cells_from_file(path: str) -> List[Cell]:
    """Reads raw cell records from a JSON file."""
    logger.info(f"Loading calendar cells from {path}")
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        logger.error(f"Failed to read calendar cells from {path}: {e}")
        raise CellSourceError(f"Failed to read calendar cells from {path}") from e

    return parse_cells(_records_from_document(data))


def fetch_cells(url: str) -> List[Cell]:
    """Fetches raw cell records from a JSON endpoint using cloudscraper."""
    logger.info(f"Fetching calendar cells from {url}")

    try:
        scraper = cloudscraper.create_scraper()
        response = scraper.get(url, headers=config.COMMON_HEADERS, timeout=config.REQUEST_TIMEOUT)
        logger.debug(f"Response status: {response.status_code}")
        response.raise_for_status()
        data = response.json()
    except Exception as e:
        logger.error(f"Error fetching calendar cells: {e}")
        if "response" in locals() and response.status_code == 403:
            logger.error("Cloudflare blocked the request even with cloudscraper.")
        raise CellSourceError(f"Failed to fetch calendar cells from {url}") from e

    return parse_cells(_records_from_document(data))


def cell_source_for(location: str) -> Callable[[str], List[Cell]]:
    """Returns a callable loading the cells for a date from a file path or URL.

    A "{date}" placeholder in the location is replaced by the requested date.
    """

    def load(date: str) -> List[Cell]:
        resolved = location.replace("{date}", date)
        if resolved.startswith(("http://", "https://")):
            return fetch_cells(resolved)
        return load_cells_from_file(resolved)

    return load
