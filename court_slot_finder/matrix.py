import logging
import time
from typing import Dict, Iterable, List

from court_slot_finder import config
from court_slot_finder.errors import NoCalendarDataError
from court_slot_finder.models import (
    AvailabilityMatrix,
    Cell,
    CellState,
    DateRange,
    HybridAvailabilityMatrix,
    MatrixConflict,
    MatrixMetrics,
    NetworkAvailabilityData,
)

logger = logging.getLogger(__name__)


class MatrixBuilder:
    """Builds an AvailabilityMatrix from a flat sequence of calendar cells.

    The input is consumed in a single pass: indexing, date range, resource and
    time point sets and state counters are all collected in the same loop.
    """

    def __init__(self, min_cells: int | None = None):
        self.min_cells = config.MATRIX_MIN_CELLS if min_cells is None else min_cells

    def build(self, cells: Iterable[Cell]) -> AvailabilityMatrix:
        started = time.perf_counter()

        index: Dict[str, Dict[str, Cell]] = {}
        resources = set()
        time_points = set()
        state_counts = {state: 0 for state in CellState}
        total_cells = 0
        date_start = ""
        date_end = ""

        for cell in cells:
            total_cells += 1
            index.setdefault(cell.resource, {})[cell.key] = cell
            resources.add(cell.resource)
            time_points.add(cell.start)
            state_counts[cell.state] += 1

            if not date_start or cell.date < date_start:
                date_start = cell.date
            if not date_end or cell.date > date_end:
                date_end = cell.date

        if total_cells == 0:
            logger.error("No calendar cells to index. Extraction produced no data.")
            raise NoCalendarDataError("No calendar cells were extracted")

        warnings = self._collect_warnings(total_cells, state_counts[CellState.FREE])
        metrics = MatrixMetrics(
            total_cells=total_cells,
            free_cells=state_counts[CellState.FREE],
            booked_cells=state_counts[CellState.BOOKED],
            unavailable_cells=state_counts[CellState.UNAVAILABLE],
            unknown_cells=state_counts[CellState.UNKNOWN],
            resources_with_data=len(resources),
            time_points_with_data=len(time_points),
            build_duration_ms=(time.perf_counter() - started) * 1000,
            is_complete=not warnings,
            warnings=warnings,
        )

        for warning in warnings:
            logger.warning(f"Matrix warning: {warning}")

        logger.info(
            f"Built calendar matrix: {metrics.total_cells} cells, {metrics.resources_with_data} resources, "
            f"{metrics.time_points_with_data} time points, {metrics.free_cells} free "
            f"(complete={metrics.is_complete}, {metrics.build_duration_ms:.2f} ms)"
        )

        return AvailabilityMatrix(
            cells=index,
            resources=sorted(resources),
            time_points=sorted(time_points),
            date_range=DateRange(start=date_start, end=date_end),
            metrics=metrics,
        )

    def build_hybrid(
        self,
        cells: Iterable[Cell],
        network_data: Dict[str, NetworkAvailabilityData] | None = None,
    ) -> HybridAvailabilityMatrix:
        """Builds a matrix and attaches availability reported by a second source.

        The network data is stored as-is. Conflicts between the two sources are
        not reconciled, so the conflict list is always empty.
        """
        matrix = self.build(cells)
        conflicts: List[MatrixConflict] = []

        if network_data:
            logger.debug(f"Attaching {len(network_data)} network availability data sets to matrix")

        return HybridAvailabilityMatrix(
            **dict(matrix),
            network_data=network_data,
            conflicts=conflicts,
        )

    def _collect_warnings(self, total_cells: int, free_cells: int) -> List[str]:
        warnings = []
        if total_cells <= self.min_cells:
            warnings.append(f"Only {total_cells} cells extracted, the grid is probably incomplete")
        if free_cells == 0:
            warnings.append("No free cells found")
        return warnings


def build_matrix(cells: Iterable[Cell]) -> AvailabilityMatrix:
    """Builds a matrix with the configured completeness threshold."""
    return MatrixBuilder().build(cells)
