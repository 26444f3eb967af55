"""
backend/pickcache/services/commit_writer.py

Purpose:
    Sole writer of analysis records. Turns a validated generation result into
    the persisted pick using one consistency strategy per deployment:

    insert (first committer wins)
        MISS  -> bare insert; a unique-key rejection means a concurrent
                 request committed first.
        STALE -> conditional replace of the exact row we judged stale; if it
                 changed underneath us, a concurrent request committed first.
        Losing either way re-reads and returns the winning row. Our own
        result is discarded and never reaches the client. If the stale row
        was deleted instead of replaced, the write falls back to an insert.

    upsert (last write wins)
        Atomic upsert keyed on (game_id, market_type) with created_at reset
        explicitly; concurrent writers silently overwrite each other.

Dependencies:
    - pickcache.services.pick_repository
    - pickcache.utils
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Literal

from pickcache.errors import PersistenceError, PickConflictError
from pickcache.models.pick import AnalysisRecord, MarketType
from pickcache.services.generator import GeneratedPick
from pickcache.services.pick_repository import PickRepository
from pickcache.utils import utcnow

logger = logging.getLogger("pickcache.commit_writer")

CommitStrategy = Literal["insert", "upsert"]


class CommitOutcome(str, Enum):
    CACHED = "cached"
    CREATED = "created"
    RACE_LOST = "race_lost"


@dataclass(frozen=True)
class CommitResult:
    record: dict[str, Any]
    outcome: CommitOutcome


class CommitWriter:
    def __init__(
        self,
        repository: PickRepository,
        strategy: CommitStrategy = "insert",
        *,
        clock: Callable = utcnow,
    ) -> None:
        if strategy not in ("insert", "upsert"):
            raise ValueError(f"Unknown commit strategy: {strategy}")
        self._repository = repository
        self.strategy = strategy
        self._clock = clock

    async def commit(
        self,
        *,
        game_id: str,
        market_type: MarketType,
        current_odds: int,
        generated: GeneratedPick,
        previous: dict[str, Any] | None,
    ) -> CommitResult:
        record = AnalysisRecord(
            game_id=game_id,
            market_type=market_type,
            pick_side=generated.pick_side,
            confidence_score=generated.confidence,
            reasoning_text=generated.reasoning,
            reasoning_embedding=generated.embedding,
            odds_at_generation=current_odds,
            created_at=self._clock(),
        )
        log_key = f"{game_id} ({market_type.value})"

        if self.strategy == "upsert":
            saved = await self._repository.upsert(record)
            return CommitResult(saved, CommitOutcome.CREATED)

        try:
            if previous is None:
                saved = await self._repository.insert(record)
            else:
                saved = await self._repository.replace_if_unchanged(record, previous.get("created_at"))
        except PickConflictError:
            saved = None

        if saved is not None:
            return CommitResult(saved, CommitOutcome.CREATED)

        logger.warning("[RACE CONDITION] Write blocked for %s. Fetching the winning record.", log_key)
        winner = await self._repository.find(game_id, market_type.value)
        if winner is None and previous is not None:
            # The stale row was removed externally; the key is free again.
            logger.info("[STALE ROW GONE] %s no longer exists, inserting instead", log_key)
            try:
                saved = await self._repository.insert(record)
                return CommitResult(saved, CommitOutcome.CREATED)
            except PickConflictError:
                winner = await self._repository.find(game_id, market_type.value)
        if winner is None:
            raise PersistenceError(
                "Race condition occurred, but failed to retrieve the winning pick.",
                details={"game_id": game_id, "market_type": market_type.value},
            )
        return CommitResult(winner, CommitOutcome.RACE_LOST)
