"""
backend/pickcache/services/pick_pipeline.py

Purpose:
    Check -> generate -> commit orchestration for a single pick request.
    There is no in-process locking: between the cache check and the commit,
    concurrent requests for the same key may both generate; the commit
    writer arbitrates via the persistence layer's unique key.

Dependencies:
    - pickcache.services.cache_reader
    - pickcache.services.generator
    - pickcache.services.commit_writer
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pickcache.models.pick import PickRequest
from pickcache.services.cache_reader import CacheReader
from pickcache.services.commit_writer import CommitOutcome, CommitWriter
from pickcache.services.generator import PickGenerator
from pickcache.services.pick_repository import PickRepository
from pickcache.services.staleness_policy import StalenessPolicy, Verdict

logger = logging.getLogger("pickcache.pick_pipeline")

_STATUS_BY_OUTCOME = {
    CommitOutcome.CACHED: 200,
    CommitOutcome.RACE_LOST: 200,
    CommitOutcome.CREATED: 201,
}


@dataclass(frozen=True)
class PipelineResult:
    record: dict[str, Any]
    outcome: CommitOutcome
    verdict: Verdict

    @property
    def status_code(self) -> int:
        return _STATUS_BY_OUTCOME[self.outcome]


class PickPipeline:
    def __init__(self, reader: CacheReader, generator: PickGenerator, writer: CommitWriter) -> None:
        self.reader = reader
        self.generator = generator
        self.writer = writer

    async def run(self, request: PickRequest) -> PipelineResult:
        market_type = request.market_type.value
        log_key = f"{request.game_id} ({market_type})"

        # 1. Check
        verdict, existing = await self.reader.lookup(request.game_id, market_type, request.current_odds)
        if verdict.is_hit:
            logger.info("[CACHE HIT] Returning locked pick for %s", log_key)
            return PipelineResult(existing, CommitOutcome.CACHED, verdict)

        logger.info("[%s] Generating new pick for %s (odds %d)", verdict.value, log_key, request.current_odds)

        # 2. Generate
        generated = await self.generator.generate(
            request.game_context,
            market_type,
            request.current_odds,
            log_key=log_key,
        )

        # 3. Commit
        committed = await self.writer.commit(
            game_id=request.game_id,
            market_type=request.market_type,
            current_odds=request.current_odds,
            generated=generated,
            previous=existing,
        )
        logger.info(
            "[COMMIT SUCCESS] Locked pick for %s. Outcome: %s (%s)",
            log_key, committed.outcome.value, self.writer.strategy,
        )
        return PipelineResult(committed.record, committed.outcome, verdict)


def build_pipeline(settings, collection, client) -> PickPipeline:
    """Wire the pipeline once from settings and shared collaborators."""
    repository = PickRepository(collection)
    policy = StalenessPolicy(
        max_age_hours=settings.PICK_MAX_AGE_HOURS,
        odds_drift_threshold=settings.PICK_ODDS_DRIFT_THRESHOLD,
    )
    generator = PickGenerator(
        client,
        embedding_dimensions=settings.EMBEDDING_DIMENSIONS,
        reasoning_min_length=settings.REASONING_MIN_LENGTH,
        llm_timeout=settings.LLM_TIMEOUT_SECONDS,
        embedding_timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
    )
    return PickPipeline(
        CacheReader(repository, policy),
        generator,
        CommitWriter(repository, settings.COMMIT_STRATEGY),
    )
