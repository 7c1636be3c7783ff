import logging
import sys
from datetime import datetime, timedelta
from typing import List, Tuple

from court_slot_finder import config, persist, searcher, source, telegram_notifier, timeutil
from court_slot_finder.models import BatchSearchEntry, BookingPattern, SearchQuery, SlotPair
from court_slot_finder.scorer import CourtScorer, PatternContext

logger = logging.getLogger(__name__)

ChosenPairs = List[Tuple[str, SlotPair]]


def get_target_dates(start_date_arg: str | None, days_arg: int, days_ahead: int | None = None) -> List[str]:
    """Determines the list of dates to search.

    An explicit start date yields `days_arg` consecutive dates. Otherwise the
    single date `days_ahead` days from today is used.
    """
    if start_date_arg:
        try:
            start_date = datetime.strptime(start_date_arg, "%Y-%m-%d")
        except ValueError:
            logger.error("Error: Start date must be in YYYY-MM-DD format.")
            sys.exit(1)
        return [(start_date + timedelta(days=i)).strftime("%Y-%m-%d") for i in range(days_arg)]

    ahead = config.DAYS_AHEAD if days_ahead is None else days_ahead
    return [timeutil.calculate_booking_date(ahead)]


def print_search_report(entry: BatchSearchEntry):
    """Prints the formatted search report for one date to stdout."""
    date_str = entry.query.date
    result = entry.result

    print(f"\n--- Slot Search Report for {date_str} ---")

    if entry.error:
        print(f"[FAILED]    {entry.error}")
        return

    print(f"Courts with free cells: {', '.join(result.available_resources) or 'none'}")
    for pair in result.available_pairs:
        print(f"[BOOKABLE]  {pair.first_start}-{pair.second_start}: {pair.resource}")

    if result.available_pairs:
        print(f"Summary: Found {len(result.available_pairs)} bookable slot pairs for {date_str}!")
    else:
        print(f"Summary: No bookable slot pairs for {date_str} ({result.total_candidate_slots} free candidate slots).")


def load_pattern_context(storage: persist.PatternStorage) -> PatternContext:
    context = PatternContext()
    context.load(storage.load_patterns())
    return context


def choose_pairs(entries: List[BatchSearchEntry], scorer: CourtScorer, preferred: List[str]) -> ChosenPairs:
    """Picks one pair per date from the bookable pairs."""
    chosen: ChosenPairs = []
    for entry in entries:
        pair = scorer.choose_pair(entry.result.available_pairs, preferred, timeutil.day_of_week(entry.query.date))
        if pair:
            chosen.append((entry.query.date, pair))
    return chosen


def send_notification(chosen: ChosenPairs):
    """Sends a Telegram notification about the chosen slot pairs."""
    print(f"\n*** Bookable slot pairs chosen for {len(chosen)} date(s) ***")
    telegram_notifier.notify_slot_pairs(chosen)


def run(
    start_date: str | None = None,
    days: int = 1,
    times: List[str] | None = None,
    calendar_source: str | None = None,
    days_ahead: int | None = None,
) -> List[BatchSearchEntry]:
    """Core orchestration logic. Searches every target date for bookable slot pairs,
    picks one pair per date and sends a notification when any was found."""
    location = calendar_source or config.CALENDAR_SOURCE
    if not location:
        logger.error("No calendar source configured. Set CALENDAR_SOURCE or pass --source.")
        sys.exit(1)

    target_times = times or config.TARGET_TIMES
    invalid_times = [t for t in target_times if not timeutil.is_valid_time(t)]
    if invalid_times:
        logger.error(f"Error: Start times must be in HH:MM format, got {', '.join(invalid_times)}.")
        sys.exit(1)

    target_dates = get_target_dates(start_date, days, days_ahead)
    logger.info(f"Searching {len(target_dates)} days: {', '.join(target_dates)} at {', '.join(target_times)}")

    queries = [SearchQuery(date=date_str, times=target_times) for date_str in target_dates]
    entries = searcher.batch_search(queries, source.cell_source_for(location))

    for entry in entries:
        print_search_report(entry)
    persist.save_report(entries)

    storage = persist.PatternStorage()
    scorer = CourtScorer(load_pattern_context(storage))
    chosen = choose_pairs(entries, scorer, config.PREFERRED_COURTS)

    if chosen:
        send_notification(chosen)
    else:
        print(f"\nNo bookable slot pairs found across {len(target_dates)} days.")

    return entries


def record_result(resource: str, date_str: str, time_slot: str, success: bool) -> BookingPattern:
    """Stores the outcome of a booking attempt so later runs can score courts by it."""
    storage = persist.PatternStorage()
    context = load_pattern_context(storage)
    pattern = context.record(resource, timeutil.normalize_time(time_slot), timeutil.day_of_week(date_str), success)
    storage.update_pattern(pattern)
    logger.info(f"Recorded {'success' if success else 'failure'} for {resource} on {date_str} at {time_slot}")
    return pattern
