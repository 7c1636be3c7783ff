import logging
from typing import Iterable, List, Tuple

from court_slot_finder.models import AvailabilityMatrix, BookingCandidate, Cell, IsolationVerdict, SlotRef
from court_slot_finder.timeutil import SLOT_DURATION_MINUTES, add_minutes, subtract_minutes

logger = logging.getLogger(__name__)

SAFE_EXPLANATION = "No isolation detected - booking is safe to proceed"
UNCHECKED_EXPLANATION = "Unable to check isolation - assuming isolation exists for safety"


class IsolationChecker:
    """Decides whether a booking would strand a free 30 minute slot next to it.

    A free slot is stranded when, once the booking is in place, it can no longer
    be combined with a neighbouring free slot into a booking of at least 60
    minutes. Both sides of the booking are analysed independently.
    """

    def check_isolation(
        self,
        matrix: AvailabilityMatrix,
        resource: str,
        date: str,
        start_time: str,
        duration_minutes: int = 60,
    ) -> IsolationVerdict:
        logger.debug(f"Checking isolation for {resource} on {date} at {start_time} ({duration_minutes} min)")

        try:
            isolated = self._check_before(matrix, resource, date, start_time)
            isolated += self._check_after(matrix, resource, date, start_time, duration_minutes)
        except Exception as e:
            logger.error(f"Failed to check isolation for {resource} on {date} at {start_time}: {e}")
            return IsolationVerdict(is_isolating=True, affected_slots=[], explanation=UNCHECKED_EXPLANATION)

        return IsolationVerdict(
            is_isolating=bool(isolated),
            affected_slots=isolated,
            explanation=self._explain(isolated),
        )

    def check_batch_isolation(
        self,
        matrix: AvailabilityMatrix,
        candidates: Iterable[BookingCandidate],
    ) -> List[Tuple[BookingCandidate, IsolationVerdict]]:
        return [
            (
                candidate,
                self.check_isolation(
                    matrix, candidate.resource, candidate.date, candidate.start, candidate.duration_minutes
                ),
            )
            for candidate in candidates
        ]

    def get_isolation_safe_slots(
        self,
        matrix: AvailabilityMatrix,
        resource: str,
        date: str,
        duration_minutes: int = 60,
    ) -> List[str]:
        """Returns the free start times on a date that can be booked without stranding a slot."""
        resource_cells = matrix.cells.get(resource)
        if not resource_cells:
            logger.warning(f"No data found for resource {resource}")
            return []

        candidates = sorted(cell.start for cell in resource_cells.values() if cell.date == date and cell.is_free)
        safe_slots = [
            start
            for start in candidates
            if not self.check_isolation(matrix, resource, date, start, duration_minutes).is_isolating
        ]

        logger.debug(f"Found {len(safe_slots)} isolation-safe slots for {resource} on {date}")
        return safe_slots

    def _check_before(self, matrix: AvailabilityMatrix, resource: str, date: str, start_time: str) -> List[SlotRef]:
        before = subtract_minutes(start_time, SLOT_DURATION_MINUTES)
        if before is None:
            return []

        before_cell = matrix.get_cell(resource, date, before)
        if before_cell is None or not before_cell.is_free:
            return []

        # The candidate consumes the slot after `before`, so only the one before it can still pair up.
        before_before = subtract_minutes(before, SLOT_DURATION_MINUTES)
        if before_before is None or not matrix.is_free(resource, date, before_before):
            return [SlotRef.from_cell(before_cell)]
        return []

    def _check_after(
        self,
        matrix: AvailabilityMatrix,
        resource: str,
        date: str,
        start_time: str,
        duration_minutes: int,
    ) -> List[SlotRef]:
        end = add_minutes(start_time, duration_minutes)
        end_cell = matrix.get_cell(resource, date, end) if end is not None else None
        if end_cell is None:
            return self._check_end_of_day(matrix, resource, date, start_time, duration_minutes)

        if not end_cell.is_free:
            return []

        # end - 30 lies inside the candidate window, so only end + 30 can still be open.
        after_end = add_minutes(end, SLOT_DURATION_MINUTES)
        if after_end is not None and matrix.is_free(resource, date, after_end):
            return []

        if self._has_skip_extension(matrix, resource, date, start_time, end):
            return []

        return [SlotRef.from_cell(end_cell)]

    @staticmethod
    def _has_skip_extension(matrix: AvailabilityMatrix, resource: str, date: str, start_time: str, end: str) -> bool:
        """Whether a 90 minute booking skipping one occupied slot would still use `end`."""
        skip_forward = add_minutes(end, 2 * SLOT_DURATION_MINUTES)
        if skip_forward is not None and matrix.is_free(resource, date, skip_forward):
            return True

        skip_backward = subtract_minutes(start_time, 2 * SLOT_DURATION_MINUTES)
        return skip_backward is not None and matrix.is_free(resource, date, skip_backward)

    @staticmethod
    def _check_end_of_day(
        matrix: AvailabilityMatrix,
        resource: str,
        date: str,
        start_time: str,
        duration_minutes: int,
    ) -> List[SlotRef]:
        isolated = []
        for offset in range(SLOT_DURATION_MINUTES, duration_minutes, SLOT_DURATION_MINUTES):
            interior = add_minutes(start_time, offset)
            if interior is None:
                break
            interior_cell: Cell | None = matrix.get_cell(resource, date, interior)
            if interior_cell is None or not interior_cell.is_free:
                continue

            following = add_minutes(interior, SLOT_DURATION_MINUTES)
            if following is None or matrix.get_cell(resource, date, following) is None:
                logger.debug(f"Slot {interior} on {resource} cannot be extended, the grid ends after it")
                isolated.append(SlotRef.from_cell(interior_cell))
        return isolated

    @staticmethod
    def _explain(isolated: List[SlotRef]) -> str:
        if not isolated:
            return SAFE_EXPLANATION
        descriptions = ", ".join(f"{slot.resource} at {slot.start}" for slot in isolated)
        return f"Booking would isolate {len(isolated)} slot(s): {descriptions}. Consider alternative times."


def check_isolation(
    matrix: AvailabilityMatrix,
    resource: str,
    date: str,
    start_time: str,
    duration_minutes: int = 60,
) -> IsolationVerdict:
    return IsolationChecker().check_isolation(matrix, resource, date, start_time, duration_minutes)
