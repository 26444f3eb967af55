"""
backend/pickcache/services/staleness_policy.py

Purpose:
    Pure classification of a cached pick against the current request: a pick
    expires after a fixed age, and is also invalidated when the market price
    it was evaluated against has moved too far. Malformed stored records are
    never trusted, but never crash the request either.

Dependencies:
    - pickcache.utils
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from pickcache.utils import parse_timestamp, utcnow

MAX_AGE_HOURS = 4.0
ODDS_DRIFT_THRESHOLD = 20


class Verdict(str, Enum):
    MISS = "MISS"
    HIT = "HIT"
    STALE_TIME = "STALE_TIME"
    STALE_ODDS = "STALE_ODDS"
    STALE_DATA_INCOMPLETE = "STALE_DATA_INCOMPLETE"

    @property
    def is_hit(self) -> bool:
        return self is Verdict.HIT


@dataclass(frozen=True)
class StalenessPolicy:
    max_age_hours: float = MAX_AGE_HOURS
    odds_drift_threshold: int = ODDS_DRIFT_THRESHOLD

    def classify(
        self,
        record: Mapping[str, Any] | None,
        current_odds: int,
        *,
        now: datetime | None = None,
    ) -> Verdict:
        if record is None:
            return Verdict.MISS

        odds_at_generation = record.get("odds_at_generation")
        created_at = parse_timestamp(record.get("created_at"))
        if (
            created_at is None
            or not isinstance(odds_at_generation, (int, float))
            or isinstance(odds_at_generation, bool)
        ):
            return Verdict.STALE_DATA_INCOMPLETE

        elapsed_hours = ((now or utcnow()) - created_at).total_seconds() / 3600
        if elapsed_hours > self.max_age_hours:
            return Verdict.STALE_TIME

        if abs(odds_at_generation - current_odds) > self.odds_drift_threshold:
            return Verdict.STALE_ODDS

        return Verdict.HIT
