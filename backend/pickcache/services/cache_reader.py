"""
backend/pickcache/services/cache_reader.py

Purpose:
    Fetch the current pick for a (game_id, market_type) key and classify it.
    A missing row is a MISS; a failing read is a PersistenceError and is
    never downgraded to a MISS, since that would trigger costly regeneration
    storms during a database outage.

Dependencies:
    - pickcache.services.pick_repository
    - pickcache.services.staleness_policy
"""

from __future__ import annotations

from typing import Any, NamedTuple

from pickcache.services.pick_repository import PickRepository
from pickcache.services.staleness_policy import StalenessPolicy, Verdict


class CacheLookup(NamedTuple):
    verdict: Verdict
    record: dict[str, Any] | None


class CacheReader:
    def __init__(self, repository: PickRepository, policy: StalenessPolicy) -> None:
        self._repository = repository
        self._policy = policy

    async def lookup(self, game_id: str, market_type: str, current_odds: int) -> CacheLookup:
        record = await self._repository.find(game_id, market_type)
        return CacheLookup(self._policy.classify(record, current_odds), record)
