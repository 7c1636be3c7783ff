from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from court_slot_finder import timeutil


def matrix_key(date: str, start: str) -> str:
    """Builds the index key used inside a matrix, e.g. 2024-01-15T14:00."""
    return f"{date}T{start}"


class CellState(str, Enum):
    FREE = "free"
    BOOKED = "booked"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class Cell(BaseModel):
    model_config = ConfigDict(frozen=True)

    resource: str
    date: str  # ISO format YYYY-MM-DD
    start: str  # HH:MM format, 30 minute grid
    state: CellState = CellState.UNKNOWN
    source_selector: str = ""
    class_name: str = ""

    @field_validator("date")
    @classmethod
    def check_date(cls, value: str) -> str:
        if not timeutil.is_valid_date(value):
            raise ValueError(f"date must be YYYY-MM-DD, got {value!r}")
        return value

    @field_validator("start")
    @classmethod
    def normalize_start(cls, value: str) -> str:
        # Matrix keys are built from the zero-padded form, e.g. 09:00.
        return timeutil.normalize_time(value)

    @property
    def key(self) -> str:
        return matrix_key(self.date, self.start)

    @property
    def is_free(self) -> bool:
        return self.state is CellState.FREE


class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: str
    end: str


class MatrixMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_cells: int
    free_cells: int
    booked_cells: int
    unavailable_cells: int
    unknown_cells: int
    resources_with_data: int
    time_points_with_data: int
    build_duration_ms: float
    is_complete: bool
    warnings: Tuple[str, ...] = ()


class AvailabilityMatrix(BaseModel):
    """Snapshot of one extraction pass: resource -> date/time key -> cell.

    The index is read-only at both levels and the sequences are tuples, so a
    built matrix can be shared between searches without copying.
    """

    model_config = ConfigDict(frozen=True)

    cells: Mapping[str, Mapping[str, Cell]]
    resources: Tuple[str, ...]
    time_points: Tuple[str, ...]
    date_range: DateRange
    metrics: MatrixMetrics
    created_at: datetime = Field(default_factory=datetime.now)
    source: str = "dom"

    @field_validator("cells")
    @classmethod
    def freeze_index(cls, value: Mapping[str, Mapping[str, Cell]]) -> Mapping[str, Mapping[str, Cell]]:
        return MappingProxyType({resource: MappingProxyType(dict(cells)) for resource, cells in value.items()})

    def get_cell(self, resource: str, date: str, start: str) -> Cell | None:
        resource_cells = self.cells.get(resource)
        if resource_cells is None:
            return None
        return resource_cells.get(matrix_key(date, start))

    def is_free(self, resource: str, date: str, start: str) -> bool:
        cell = self.get_cell(resource, date, start)
        return cell is not None and cell.is_free

    def resource_has_free_cell(self, resource: str) -> bool:
        return any(cell.is_free for cell in self.cells.get(resource, {}).values())


class NetworkAvailabilityData(BaseModel):
    available_slots: List[str]
    timestamp: datetime
    reliability: float = Field(ge=0.0, le=1.0)


class MatrixConflict(BaseModel):
    resource: str
    date: str
    start: str
    dom_state: CellState
    network_state: CellState
    resolution: str | None = None


class HybridAvailabilityMatrix(AvailabilityMatrix):
    # Keyed by "<resource>:<date>"
    network_data: Dict[str, NetworkAvailabilityData] | None = None
    conflicts: List[MatrixConflict] = Field(default_factory=list)


class SlotRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    resource: str
    date: str
    start: str
    source_selector: str = ""

    @classmethod
    def from_cell(cls, cell: Cell) -> "SlotRef":
        return cls(resource=cell.resource, date=cell.date, start=cell.start, source_selector=cell.source_selector)


class IsolationVerdict(BaseModel):
    is_isolating: bool
    affected_slots: List[SlotRef] = Field(default_factory=list)
    explanation: str


class BookingCandidate(BaseModel):
    resource: str
    date: str
    start: str
    duration_minutes: int = 60


class SlotPair(BaseModel):
    resource: str
    first: SlotRef
    second: SlotRef

    @property
    def first_start(self) -> str:
        return self.first.start

    @property
    def second_start(self) -> str:
        return self.second.start


class SearchQuery(BaseModel):
    date: str
    times: List[str]


class SearchResult(BaseModel):
    available_resources: List[str] = Field(default_factory=list)
    total_candidate_slots: int = 0
    available_pairs: List[SlotPair] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "SearchResult":
        return cls()


class BatchSearchEntry(BaseModel):
    query: SearchQuery
    result: SearchResult
    error: str | None = None


class BookingPattern(BaseModel):
    resource: str
    time_slot: str
    day_of_week: int = Field(ge=0, le=6)  # 0 = Monday
    success_rate: float = Field(ge=0.0, le=1.0)
    total_attempts: int = Field(ge=0)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ScoreComponents(BaseModel):
    availability: float
    historical: float
    preference: float
    position: float


class CourtScore(BaseModel):
    resource: str
    score: float
    components: ScoreComponents
    reason: str
