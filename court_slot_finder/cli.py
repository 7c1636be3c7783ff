import argparse
import logging
import sys
import time

from court_slot_finder import run

# --- Logging Setup ---

logger = logging.getLogger(__name__)

RESULT_CHOICES = {"success": True, "failure": False}


def setup_logging(verbose: bool):
    """Configures logging to stderr with local time."""
    level = logging.DEBUG if verbose else logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s]: %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Use local time instead of UTC for logging
    formatter.converter = time.localtime
    handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def parse_arguments(argv=None):
    """Parses command line arguments."""
    parser = argparse.ArgumentParser(description="Find court slot pairs that are safe to book.")
    parser.add_argument("--start-date", type=str, help="Start date in YYYY-MM-DD format. Defaults to the booking horizon.")
    parser.add_argument("--days", type=int, default=1, help="Number of days to check from --start-date. Defaults to 1.")
    parser.add_argument("--times", type=str, help="Comma separated start times in HH:MM format, e.g. 14:00,18:30.")
    parser.add_argument("--source", type=str, help="Calendar JSON file or URL. '{date}' is replaced by the date.")
    parser.add_argument(
        "--record",
        nargs=4,
        metavar=("COURT", "DATE", "TIME", "RESULT"),
        help="Record a booking outcome (RESULT is success or failure) instead of searching.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging.")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    if args.record:
        court, date_str, time_slot, result = args.record
        if result not in RESULT_CHOICES:
            logger.error(f"Error: RESULT must be one of {', '.join(RESULT_CHOICES)}.")
            sys.exit(1)
        run.record_result(court, date_str, time_slot, RESULT_CHOICES[result])
        return

    times = [t.strip() for t in args.times.split(",") if t.strip()] if args.times else None
    run.run(start_date=args.start_date, days=args.days, times=times, calendar_source=args.source)


if __name__ == "__main__":
    main()
