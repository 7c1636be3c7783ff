class CourtSlotFinderError(Exception):
    """Base class for all errors raised by court_slot_finder."""


class NoCalendarDataError(CourtSlotFinderError):
    """Raised when an extraction pass produced no usable calendar cells."""


class CellSourceError(CourtSlotFinderError):
    """Raised when calendar cells could not be fetched or read."""


class InvalidSearchParameterError(CourtSlotFinderError, ValueError):
    """Raised for a malformed target date or start time."""


class PatternsNotLoadedError(CourtSlotFinderError):
    """Raised when a pattern context is queried before patterns were loaded."""
