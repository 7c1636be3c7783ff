import logging
from typing import Callable, Dict, Iterable, List

from court_slot_finder import timeutil
from court_slot_finder.errors import InvalidSearchParameterError
from court_slot_finder.isolation import IsolationChecker
from court_slot_finder.matrix import MatrixBuilder
from court_slot_finder.models import (
    AvailabilityMatrix,
    BatchSearchEntry,
    Cell,
    SearchQuery,
    SearchResult,
    SlotPair,
    SlotRef,
)

logger = logging.getLogger(__name__)

PAIR_DURATION_MINUTES = 60

CellSource = Callable[[str], Iterable[Cell]]


class SlotSearcher:
    """Finds bookable 60 minute slot pairs for one date and a list of start times.

    The searcher only keeps its validated parameters. Every call to `search`
    works on the matrix it is given, so a stale matrix gives stale results.
    """

    def __init__(self, target_date: str, target_times: List[str], isolation_checker: IsolationChecker | None = None):
        self.target_date = target_date
        self.target_times = list(target_times)
        self.isolation_checker = isolation_checker or IsolationChecker()
        self._validate_inputs()

    def _validate_inputs(self):
        if not timeutil.is_valid_date(self.target_date):
            raise InvalidSearchParameterError(f"Invalid target date: {self.target_date}")

        for index, time_str in enumerate(self.target_times):
            if not timeutil.is_valid_time(time_str):
                raise InvalidSearchParameterError(f"Invalid target time at index {index}: {time_str}")

        self.target_times = [timeutil.normalize_time(t) for t in self.target_times]
        logger.debug(f"Searcher inputs validated: {self.target_date}, {len(self.target_times)} target times")

    def search(self, matrix: AvailabilityMatrix) -> SearchResult:
        logger.info(f"Searching slot pairs on {self.target_date} for times {', '.join(self.target_times)}")

        try:
            available_resources = self._get_available_resources(matrix)
            candidate_slots = self._get_candidate_slots(matrix)
            available_pairs = self._find_available_pairs(matrix, candidate_slots)
        except Exception as e:
            logger.error(f"Slot search on {self.target_date} failed: {e}")
            return SearchResult.empty()

        logger.info(
            f"Search on {self.target_date} finished: {len(available_resources)} resources with free cells, "
            f"{len(candidate_slots)} candidate slots, {len(available_pairs)} bookable pairs"
        )
        return SearchResult(
            available_resources=available_resources,
            total_candidate_slots=len(candidate_slots),
            available_pairs=available_pairs,
        )

    @staticmethod
    def _get_available_resources(matrix: AvailabilityMatrix) -> List[str]:
        return sorted(resource for resource in matrix.cells if matrix.resource_has_free_cell(resource))

    def _get_candidate_slots(self, matrix: AvailabilityMatrix) -> List[SlotRef]:
        slots = []
        for resource in sorted(matrix.cells):
            for target_time in self.target_times:
                cell = matrix.get_cell(resource, self.target_date, target_time)
                if cell is not None and cell.is_free:
                    slots.append(SlotRef.from_cell(cell))
        logger.debug(f"Found {len(slots)} free candidate slots for {len(self.target_times)} target times")
        return slots

    def _find_available_pairs(self, matrix: AvailabilityMatrix, candidate_slots: List[SlotRef]) -> List[SlotPair]:
        pairs = []
        slots_by_resource: Dict[str, Dict[str, SlotRef]] = {}
        for slot in candidate_slots:
            slots_by_resource.setdefault(slot.resource, {})[slot.start] = slot

        for resource, slots_by_time in slots_by_resource.items():
            for target_time in self.target_times:
                first = slots_by_time.get(target_time)
                if first is None:
                    continue

                try:
                    _, second_time = timeutil.generate_time_slots(target_time, PAIR_DURATION_MINUTES)
                except ValueError:
                    continue
                second_cell = matrix.get_cell(resource, self.target_date, second_time)
                if second_cell is None or not second_cell.is_free:
                    continue

                verdict = self.isolation_checker.check_isolation(
                    matrix, resource, self.target_date, target_time, PAIR_DURATION_MINUTES
                )
                if verdict.is_isolating:
                    logger.debug(f"Skipping {resource} {target_time}-{second_time}: {verdict.explanation}")
                    continue

                logger.debug(f"Found bookable pair {resource} {target_time}-{second_time}")
                pairs.append(SlotPair(resource=resource, first=first, second=SlotRef.from_cell(second_cell)))

        return pairs


def search(matrix: AvailabilityMatrix, date: str, desired_start_times: List[str]) -> SearchResult:
    """Runs a single search. Invalid dates or times raise InvalidSearchParameterError."""
    return SlotSearcher(date, desired_start_times).search(matrix)


def batch_search(
    queries: Iterable[SearchQuery],
    cell_source: CellSource,
    builder: MatrixBuilder | None = None,
) -> List[BatchSearchEntry]:
    """Runs one independent search per query, each on a freshly built matrix.

    A failing query yields an empty result instead of aborting the batch, so the
    output always has one entry per query.
    """
    builder = builder or MatrixBuilder()
    queries = list(queries)
    logger.info(f"Starting batch search for {len(queries)} queries")

    entries = []
    for query in queries:
        try:
            searcher = SlotSearcher(query.date, query.times)
            matrix = builder.build(cell_source(query.date))
            result = searcher.search(matrix)
            entries.append(BatchSearchEntry(query=query, result=result))
        except Exception as e:
            logger.error(f"Batch search query for {query.date} failed: {e}")
            entries.append(BatchSearchEntry(query=query, result=SearchResult.empty(), error=str(e)))

    successful = sum(1 for entry in entries if entry.error is None)
    logger.info(f"Batch search completed: {successful}/{len(entries)} queries succeeded")
    return entries
