import json
import logging
import os
import shutil
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from pydantic import ValidationError

from court_slot_finder import config
from court_slot_finder.models import BookingPattern

logger = logging.getLogger(__name__)


def ensure_data_dir(path: str | None = None):
    """Ensures the directory holding `path` (default: the data directory) exists."""
    directory = os.path.dirname(path) if path else config.DATA_DIR
    if directory and not os.path.exists(directory):
        os.makedirs(directory)


class PatternStorage:
    """JSON file storage for booking patterns, with a backup copy and age based cleanup."""

    def __init__(self, file_path: str | None = None, max_age_days: int | None = None):
        self.file_path = file_path or config.PATTERN_FILE
        self.backup_path = f"{self.file_path}.backup"
        self.max_age_days = config.PATTERN_MAX_AGE_DAYS if max_age_days is None else max_age_days

    def load_patterns(self) -> List[BookingPattern]:
        if not os.path.exists(self.file_path):
            logger.info("No pattern file found. Starting with empty patterns.")
            return []
        try:
            patterns = self._read(self.file_path)
        except (json.JSONDecodeError, IOError, ValueError) as e:
            logger.error(f"Failed to load patterns from {self.file_path}: {e}. Trying backup.")
            return self._load_from_backup()

        cleaned = self._cleanup(patterns)
        logger.info(f"Loaded {len(patterns)} patterns ({len(cleaned)} after cleanup) from {self.file_path}")
        return cleaned

    def save_patterns(self, patterns: List[BookingPattern]):
        ensure_data_dir(self.file_path)
        self._create_backup()

        cleaned = self._cleanup(patterns)
        data = {
            "last_updated": datetime.now(timezone.utc).isoformat(),
            "patterns": [p.model_dump(mode="json") for p in cleaned],
        }
        with open(self.file_path, "w") as f:
            json.dump(data, f, indent=2)
        logger.info(f"Saved {len(cleaned)} patterns to {self.file_path}")

    def update_pattern(self, updated: BookingPattern):
        patterns = [
            p
            for p in self.load_patterns()
            if (p.resource, p.time_slot, p.day_of_week) != (updated.resource, updated.time_slot, updated.day_of_week)
        ]
        patterns.append(updated)
        self.save_patterns(patterns)

    def get_statistics(self) -> Dict:
        patterns = self.load_patterns()
        if not patterns:
            return {"total_patterns": 0, "average_success_rate": 0.0, "court_stats": {}, "time_slot_stats": {}}

        return {
            "total_patterns": len(patterns),
            "average_success_rate": sum(p.success_rate for p in patterns) / len(patterns),
            "court_stats": self._group_stats(patterns, "resource"),
            "time_slot_stats": self._group_stats(patterns, "time_slot"),
        }

    @staticmethod
    def _group_stats(patterns: List[BookingPattern], field: str) -> Dict[str, Dict]:
        groups: Dict[str, List[BookingPattern]] = {}
        for pattern in patterns:
            groups.setdefault(getattr(pattern, field), []).append(pattern)
        return {
            key: {
                "success_rate": sum(p.success_rate for p in group) / len(group),
                "attempts": sum(p.total_attempts for p in group),
            }
            for key, group in groups.items()
        }

    @staticmethod
    def _read(path: str) -> List[BookingPattern]:
        with open(path, "r") as f:
            data = json.load(f)
        if not isinstance(data, dict) or "patterns" not in data:
            raise ValueError("Pattern file has unexpected format")
        try:
            return [BookingPattern.model_validate(item) for item in data["patterns"]]
        except ValidationError as e:
            raise ValueError(f"Invalid pattern data: {e}") from e

    def _load_from_backup(self) -> List[BookingPattern]:
        try:
            patterns = self._read(self.backup_path)
        except (json.JSONDecodeError, IOError, ValueError) as e:
            logger.warning(f"Could not load patterns from backup, starting fresh: {e}")
            return []
        logger.info(f"Loaded {len(patterns)} patterns from backup")
        return patterns

    def _create_backup(self):
        if os.path.exists(self.file_path):
            shutil.copyfile(self.file_path, self.backup_path)
            logger.debug(f"Created pattern file backup at {self.backup_path}")

    def _cleanup(self, patterns: List[BookingPattern]) -> List[BookingPattern]:
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.max_age_days)
        # Naive timestamps are taken as local time.
        return [p for p in patterns if p.last_updated.astimezone(timezone.utc) > cutoff]


def save_report(results: List):
    """Saves the search report to a JSON file."""
    ensure_data_dir()
    try:
        serialized_results = [r.model_dump(mode="json") if hasattr(r, "model_dump") else r for r in results]
        data = {"last_updated": datetime.now(timezone.utc).isoformat(), "searches": serialized_results}
        with open(config.REPORT_FILE, "w") as f:
            json.dump(data, f, indent=2)
        logger.info(f"Saved report to {config.REPORT_FILE}")
    except IOError as e:
        logger.error(f"Failed to save report: {e}")
