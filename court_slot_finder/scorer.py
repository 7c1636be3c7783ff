import logging
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List

from court_slot_finder.errors import PatternsNotLoadedError
from court_slot_finder.models import BookingPattern, CourtScore, ScoreComponents, SlotPair

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: Dict[str, float] = {
    "availability": 0.4,
    "historical": 0.3,
    "preference": 0.2,
    "position": 0.1,
}

MIN_ATTEMPTS_FOR_HISTORY = 3
NEUTRAL_SCORE = 0.5
MIN_COURT_NUMBER = 1
MAX_COURT_NUMBER = 8

NOT_LOADED = object()


def pattern_key(resource: str, time_slot: str, day_of_week: int) -> str:
    return f"{resource}:{time_slot}:{day_of_week}"


class PatternContext:
    """Historical booking outcomes, passed explicitly to the scorer.

    Starts out NOT_LOADED; callers load it from storage before scoring.
    """

    def __init__(self):
        self._patterns = NOT_LOADED

    @property
    def is_loaded(self) -> bool:
        return self._patterns is not NOT_LOADED

    def load(self, patterns: Iterable[BookingPattern]):
        self._patterns = {pattern_key(p.resource, p.time_slot, p.day_of_week): p for p in patterns}
        logger.info(f"Loaded {len(self._patterns)} booking patterns")

    def _require_loaded(self) -> Dict[str, BookingPattern]:
        if not self.is_loaded:
            raise PatternsNotLoadedError("Booking patterns have not been loaded")
        return self._patterns

    def get(self, resource: str, time_slot: str, day_of_week: int) -> BookingPattern | None:
        return self._require_loaded().get(pattern_key(resource, time_slot, day_of_week))

    def record(self, resource: str, time_slot: str, day_of_week: int, success: bool) -> BookingPattern:
        """Folds one booking attempt into the running success rate."""
        patterns = self._require_loaded()
        key = pattern_key(resource, time_slot, day_of_week)
        existing = patterns.get(key)

        if existing:
            total_attempts = existing.total_attempts + 1
            successes = existing.success_rate * existing.total_attempts + (1 if success else 0)
            updated = existing.model_copy(
                update={
                    "total_attempts": total_attempts,
                    "success_rate": successes / total_attempts,
                    "last_updated": datetime.now(timezone.utc),
                }
            )
        else:
            updated = BookingPattern(
                resource=resource,
                time_slot=time_slot,
                day_of_week=day_of_week,
                success_rate=1.0 if success else 0.0,
                total_attempts=1,
            )

        patterns[key] = updated
        logger.debug(
            f"Recorded {'success' if success else 'failure'} for {key}: "
            f"{updated.success_rate:.2f} over {updated.total_attempts} attempts"
        )
        return updated

    def export(self) -> List[BookingPattern]:
        return list(self._require_loaded().values())


class CourtScorer:
    """Ranks courts by availability, historical success, preference and position."""

    def __init__(self, context: PatternContext, weights: Dict[str, float] | None = None):
        self.context = context
        self.weights = {**DEFAULT_WEIGHTS, **(weights or {})}
        logger.debug(f"CourtScorer initialized with weights {self.weights}")

    def score_courts(
        self,
        resources: List[str],
        available_resources: List[str],
        preferred_resources: List[str],
        time_slot: str,
        day_of_week: int,
    ) -> List[CourtScore]:
        """Scores each resource, highest score first."""
        scores = [
            self._score_court(resource, available_resources, preferred_resources, time_slot, day_of_week)
            for resource in resources
        ]
        scores.sort(key=lambda s: s.score, reverse=True)

        if scores:
            logger.debug(f"Top score for {time_slot}: {scores[0].resource} ({scores[0].score:.3f})")
        return scores

    def _score_court(
        self,
        resource: str,
        available_resources: List[str],
        preferred_resources: List[str],
        time_slot: str,
        day_of_week: int,
    ) -> CourtScore:
        components = ScoreComponents(
            availability=1.0 if resource in available_resources else 0.0,
            historical=self._historical_score(resource, time_slot, day_of_week),
            preference=self._preference_score(resource, preferred_resources),
            position=self._position_score(resource),
        )
        score = sum(getattr(components, name) * weight for name, weight in self.weights.items())
        return CourtScore(resource=resource, score=score, components=components, reason=self._reason(resource, components))

    def _historical_score(self, resource: str, time_slot: str, day_of_week: int) -> float:
        pattern = self.context.get(resource, time_slot, day_of_week)
        if pattern is None or pattern.total_attempts < MIN_ATTEMPTS_FOR_HISTORY:
            return NEUTRAL_SCORE
        return pattern.success_rate

    @staticmethod
    def _preference_score(resource: str, preferred_resources: List[str]) -> float:
        if not preferred_resources:
            return NEUTRAL_SCORE
        if resource not in preferred_resources:
            return 0.3
        # First preference gets 1.0, later ones approach 0.6
        return 1.0 - (preferred_resources.index(resource) / len(preferred_resources)) * 0.4

    @staticmethod
    def _position_score(resource: str) -> float:
        match = re.search(r"\d+", resource)
        if not match:
            return NEUTRAL_SCORE

        number = int(match.group(0))
        if number < MIN_COURT_NUMBER or number > MAX_COURT_NUMBER:
            return NEUTRAL_SCORE

        score = 1.0 - ((number - MIN_COURT_NUMBER) / (MAX_COURT_NUMBER - MIN_COURT_NUMBER)) * 0.7
        return max(0.3, score)

    @staticmethod
    def _reason(resource: str, components: ScoreComponents) -> str:
        reasons = ["available" if components.availability == 1.0 else "not available"]

        if components.historical > 0.7:
            reasons.append("high historical success")
        elif components.historical < 0.3:
            reasons.append("low historical success")

        if components.preference > 0.7:
            reasons.append("preferred court")
        elif components.preference < 0.4:
            reasons.append("non-preferred court")

        if components.position > 0.7:
            reasons.append("good position")

        return f"Court {resource}: {', '.join(reasons)}"

    @staticmethod
    def get_best_court(scores: List[CourtScore]) -> str | None:
        available = [s for s in scores if s.components.availability == 1.0]
        if not available:
            return None
        best = available[0]
        logger.info(f"Selected best court {best.resource} ({best.score:.3f}): {best.reason}")
        return best.resource

    def choose_pair(self, pairs: List[SlotPair], preferred_resources: List[str], day_of_week: int) -> SlotPair | None:
        """Picks the pair on the best scoring court; ties keep search order."""
        if not pairs:
            return None

        available = sorted({pair.resource for pair in pairs})
        best_pair = None
        best_score = None
        for pair in pairs:
            score = self._score_court(pair.resource, available, preferred_resources, pair.first_start, day_of_week)
            if best_score is None or score.score > best_score:
                best_pair, best_score = pair, score.score

        logger.info(f"Chose pair {best_pair.resource} {best_pair.first_start}-{best_pair.second_start}")
        return best_pair

    def get_statistics(self) -> Dict:
        patterns = self.context.export()
        if not patterns:
            return {
                "total_patterns": 0,
                "average_success_rate": 0.0,
                "most_successful_court": None,
                "least_successful_court": None,
            }

        rates_by_court: Dict[str, List[float]] = {}
        for pattern in patterns:
            rates_by_court.setdefault(pattern.resource, []).append(pattern.success_rate)
        court_rates = {court: sum(rates) / len(rates) for court, rates in rates_by_court.items()}

        return {
            "total_patterns": len(patterns),
            "average_success_rate": sum(p.success_rate for p in patterns) / len(patterns),
            "most_successful_court": max(court_rates, key=court_rates.get),
            "least_successful_court": min(court_rates, key=court_rates.get),
        }
