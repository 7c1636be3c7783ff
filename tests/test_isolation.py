from unittest.mock import MagicMock

import pytest

from court_slot_finder.isolation import SAFE_EXPLANATION, IsolationChecker, check_isolation
from court_slot_finder.matrix import MatrixBuilder
from court_slot_finder.models import BookingCandidate, Cell, CellState

DATE = "2024-01-15"
F = CellState.FREE
B = CellState.BOOKED


def build(slots, resource="court1"):
    """Builds a matrix from {start: state} for one resource."""
    cells = [Cell(resource=resource, date=DATE, start=start, state=state) for start, state in slots.items()]
    return MatrixBuilder().build(cells)


def affected_starts(verdict):
    return [slot.start for slot in verdict.affected_slots]


@pytest.fixture
def checker():
    return IsolationChecker()


@pytest.fixture
def typical_matrix():
    return build({"13:30": B, "14:00": F, "14:30": F, "15:00": F, "15:30": B, "16:00": F})


def test_safe_booking(checker, typical_matrix):
    verdict = checker.check_isolation(typical_matrix, "court1", DATE, "14:00", 60)

    assert verdict.is_isolating is False
    assert verdict.affected_slots == []
    assert verdict.explanation == SAFE_EXPLANATION


def test_isolates_slot_before(checker, typical_matrix):
    verdict = checker.check_isolation(typical_matrix, "court1", DATE, "14:30", 60)

    assert verdict.is_isolating is True
    assert affected_starts(verdict) == ["14:00"]
    assert verdict.affected_slots[0].resource == "court1"
    assert "Booking would isolate 1 slot(s): court1 at 14:00" in verdict.explanation


def test_booked_slot_after_does_not_isolate(checker):
    matrix = build({"13:30": B, "14:00": F, "14:30": F, "15:00": F, "15:30": B, "16:00": F, "16:30": B})

    verdict = checker.check_isolation(matrix, "court1", DATE, "14:30", 60)

    assert "16:00" not in affected_starts(verdict)
    assert "14:00" in affected_starts(verdict)


def test_symmetry_example():
    matrix = build({"13:00": F, "13:30": B, "14:00": F, "14:30": F}, resource="R")

    verdict = check_isolation(matrix, "R", DATE, "13:30", 60)

    assert verdict.is_isolating is True
    assert "13:00" in affected_starts(verdict)
    assert "14:00" not in affected_starts(verdict)


def test_free_slot_two_before_rescues_slot_before():
    matrix = build({"12:30": F, "13:00": F, "13:30": B, "14:00": F, "14:30": F}, resource="R")

    verdict = check_isolation(matrix, "R", DATE, "13:30", 60)

    assert "13:00" not in affected_starts(verdict)
    assert verdict.is_isolating is False


def test_isolates_slot_after(checker):
    matrix = build({"13:00": B, "13:30": B, "14:00": F, "14:30": F, "15:00": F, "15:30": B})

    verdict = checker.check_isolation(matrix, "court1", DATE, "14:00", 60)

    assert verdict.is_isolating is True
    assert affected_starts(verdict) == ["15:00"]


def test_skip_forward_extension_rescues_slot_after(checker):
    matrix = build({"13:00": B, "13:30": B, "14:00": F, "14:30": F, "15:00": F, "15:30": B, "16:00": F})

    verdict = checker.check_isolation(matrix, "court1", DATE, "14:00", 60)

    assert verdict.is_isolating is False


def test_skip_backward_extension_rescues_slot_after(checker):
    matrix = build({"13:00": F, "13:30": B, "14:00": F, "14:30": F, "15:00": F, "15:30": B})

    verdict = checker.check_isolation(matrix, "court1", DATE, "14:00", 60)

    assert verdict.is_isolating is False


def test_free_neighbour_after_keeps_slot_usable(checker):
    matrix = build({"13:30": B, "14:00": F, "14:30": F, "15:00": F, "15:30": F, "16:00": B})

    verdict = checker.check_isolation(matrix, "court1", DATE, "14:00", 60)

    assert verdict.is_isolating is False


def test_unknown_state_is_not_free(checker):
    matrix = build({"13:30": CellState.UNKNOWN, "14:00": F, "14:30": F, "15:00": F, "15:30": B})

    verdict = checker.check_isolation(matrix, "court1", DATE, "14:30", 60)

    assert affected_starts(verdict) == ["14:00"]


def test_beginning_of_day(checker):
    matrix = build({"09:00": F, "09:30": F, "10:00": B}, resource="court2")

    verdict = checker.check_isolation(matrix, "court2", DATE, "09:30", 60)

    assert verdict.is_isolating is True
    assert affected_starts(verdict) == ["09:00"]


def test_first_slot_of_day_has_nothing_before(checker):
    matrix = build({"00:00": F, "00:30": F, "01:00": B})

    verdict = checker.check_isolation(matrix, "court1", DATE, "00:00", 60)

    assert verdict.is_isolating is False


def test_end_of_day(checker):
    matrix = build({"22:00": B, "22:30": F, "23:00": F})

    verdict = checker.check_isolation(matrix, "court1", DATE, "22:30", 60)

    assert verdict.is_isolating is True
    assert "23:00" in affected_starts(verdict)


def test_end_of_grid_with_booked_interior(checker):
    matrix = build({"15:30": B, "16:00": F, "16:30": B})

    verdict = checker.check_isolation(matrix, "court1", DATE, "16:00", 60)

    assert verdict.is_isolating is False


def test_missing_resource_is_safe(checker, typical_matrix):
    verdict = checker.check_isolation(typical_matrix, "nonexistent-court", DATE, "14:00", 60)

    assert verdict.is_isolating is False
    assert verdict.affected_slots == []


def test_malformed_time_assumes_isolation(checker, typical_matrix):
    verdict = checker.check_isolation(typical_matrix, "court1", DATE, "25:99", 60)

    assert verdict.is_isolating is True
    assert verdict.affected_slots == []
    assert verdict.explanation.startswith("Unable to check isolation")


def test_broken_matrix_assumes_isolation(checker):
    matrix = MagicMock()
    matrix.get_cell.side_effect = RuntimeError("corrupt matrix")

    verdict = checker.check_isolation(matrix, "court1", DATE, "14:00", 60)

    assert verdict.is_isolating is True
    assert "Unable to check isolation" in verdict.explanation


def test_check_is_idempotent(checker, typical_matrix):
    first = checker.check_isolation(typical_matrix, "court1", DATE, "14:30", 60)
    second = checker.check_isolation(typical_matrix, "court1", DATE, "14:30", 60)

    assert first == second


def test_batch_isolation_preserves_order(checker, typical_matrix):
    candidates = [
        BookingCandidate(resource="court1", date=DATE, start="14:00"),
        BookingCandidate(resource="court1", date=DATE, start="14:30"),
        BookingCandidate(resource="court1", date=DATE, start="15:00"),
    ]

    results = checker.check_batch_isolation(typical_matrix, candidates)

    assert [candidate for candidate, _ in results] == candidates
    assert [verdict.is_isolating for _, verdict in results] == [False, True, False]


def test_batch_isolation_failure_is_per_candidate(checker, typical_matrix):
    candidates = [
        BookingCandidate(resource="court1", date=DATE, start="bad"),
        BookingCandidate(resource="court1", date=DATE, start="14:00"),
    ]

    results = checker.check_batch_isolation(typical_matrix, candidates)

    assert results[0][1].is_isolating is True
    assert results[1][1].is_isolating is False


def test_isolation_safe_slots(checker, typical_matrix):
    safe_slots = checker.get_isolation_safe_slots(typical_matrix, "court1", DATE, 60)

    assert safe_slots == ["14:00", "15:00", "16:00"]
    assert "14:30" not in safe_slots


def test_isolation_safe_slots_other_date(checker, typical_matrix):
    assert checker.get_isolation_safe_slots(typical_matrix, "court1", "2024-01-16", 60) == []


def test_isolation_safe_slots_unknown_resource(checker, typical_matrix):
    assert checker.get_isolation_safe_slots(typical_matrix, "non-existent", DATE, 60) == []


def test_end_of_day_walks_every_interior_slot(checker):
    # 22:30 can still pair with 23:00, but 23:00 has nothing after it.
    matrix = build({"21:30": B, "22:00": F, "22:30": F, "23:00": F})

    verdict = checker.check_isolation(matrix, "court1", DATE, "22:00", 90)

    assert verdict.is_isolating is True
    assert affected_starts(verdict) == ["23:00"]


def test_end_of_day_skips_booked_interior_slots(checker):
    matrix = build({"20:30": B, "21:00": F, "21:30": B, "22:00": F, "22:30": F})

    verdict = checker.check_isolation(matrix, "court1", DATE, "21:00", 120)

    assert affected_starts(verdict) == ["22:30"]


def test_longer_booking_isolates_slot_after(checker):
    matrix = build({"13:30": B, "14:00": F, "14:30": F, "15:00": F, "15:30": F, "16:00": B})

    assert checker.check_isolation(matrix, "court1", DATE, "14:00", 60).is_isolating is False

    verdict = checker.check_isolation(matrix, "court1", DATE, "14:00", 90)

    assert verdict.is_isolating is True
    assert affected_starts(verdict) == ["15:30"]


def test_two_hour_booking_with_free_pair_after(checker):
    matrix = build(
        {"13:30": B, "14:00": F, "14:30": F, "15:00": F, "15:30": F, "16:00": F, "16:30": F, "17:00": B}
    )

    verdict = checker.check_isolation(matrix, "court1", DATE, "14:00", 120)

    assert verdict.is_isolating is False
    assert verdict.explanation == SAFE_EXPLANATION


def test_booking_running_past_midnight(checker):
    matrix = build({"22:30": B, "23:00": F, "23:30": F})

    verdict = checker.check_isolation(matrix, "court1", DATE, "23:00", 60)

    assert verdict.is_isolating is True
    assert affected_starts(verdict) == ["23:30"]
    assert "Unable to check isolation" not in verdict.explanation


def test_booking_past_midnight_without_interior_cells(checker):
    matrix = build({"23:00": B, "23:30": F})

    verdict = checker.check_isolation(matrix, "court1", DATE, "23:30", 90)

    assert verdict.is_isolating is False
    assert verdict.explanation == SAFE_EXPLANATION


def test_duration_off_the_half_hour_grid(checker, typical_matrix):
    # No cell starts at 14:45, so the interior slot 14:30 is checked instead.
    verdict = checker.check_isolation(typical_matrix, "court1", DATE, "14:00", 45)

    assert verdict.is_isolating is False

    verdict = checker.check_isolation(build({"14:00": F, "14:30": F}), "court1", DATE, "14:00", 45)

    assert affected_starts(verdict) == ["14:30"]


def test_isolation_safe_slots_for_longer_booking(checker):
    matrix = build({"13:30": B, "14:00": F, "14:30": F, "15:00": F, "15:30": B})

    assert checker.get_isolation_safe_slots(matrix, "court1", DATE, 60) == ["15:00"]
    assert checker.get_isolation_safe_slots(matrix, "court1", DATE, 90) == ["14:00", "15:00"]


def test_batch_isolation_with_mixed_durations(checker):
    matrix = build({"13:30": B, "14:00": F, "14:30": F, "15:00": F, "15:30": F, "16:00": B})
    candidates = [
        BookingCandidate(resource="court1", date=DATE, start="14:00", duration_minutes=60),
        BookingCandidate(resource="court1", date=DATE, start="14:00", duration_minutes=90),
    ]

    results = checker.check_batch_isolation(matrix, candidates)

    assert [verdict.is_isolating for _, verdict in results] == [False, True]
