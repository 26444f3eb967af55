import asyncio
import logging
from datetime import timedelta

from pydantic import ValidationError
from pymongo.errors import PyMongoError

from pickcache.database import UPCOMING_GAMES_COLLECTION
from pickcache.errors import PickServiceError, UpstreamError
from pickcache.models.pick import PickRequest
from pickcache.services.commit_writer import CommitOutcome
from pickcache.services.pick_pipeline import PickPipeline
from pickcache.utils import utcnow

logger = logging.getLogger("pickcache.pick_refresh")

_MAX_GAMES_PER_RUN = 500


async def refresh_upcoming_picks(
    db,
    pipeline: PickPipeline,
    *,
    lookahead_hours: int = 48,
    max_retries: int = 3,
    retry_base_seconds: float = 1.0,
) -> dict[str, int]:
    """Run every scheduled game in the lookahead window through the pick pipeline.

    Uses the same check/generate/commit path as the HTTP endpoint, so fresh
    picks are left alone and only missing or stale ones are regenerated.
    Provider outages are retried here with exponential backoff; everything
    else is logged and the game skipped.
    """
    now = utcnow()
    counters = {"processed": 0, "cached": 0, "created": 0, "race_lost": 0, "failed": 0, "skipped": 0}

    try:
        games = await db[UPCOMING_GAMES_COLLECTION].find(
            {
                "status": "scheduled",
                "commence_time": {"$gte": now, "$lte": now + timedelta(hours=lookahead_hours)},
            },
            {"_id": 0},
        ).sort("commence_time", 1).to_list(length=_MAX_GAMES_PER_RUN)
    except PyMongoError as exc:
        logger.error("Failed to fetch upcoming games: %s", exc)
        return counters

    logger.info("[REFRESH START] %d upcoming games", len(games))

    for game in games:
        try:
            request = PickRequest.model_validate({
                "game_id": game.get("game_id"),
                "market_type": game.get("market_type") or "moneyline",
                "current_odds": game.get("current_odds"),
                "game_context": game.get("game_context") or {},
            })
        except ValidationError as exc:
            counters["skipped"] += 1
            logger.info("[SKIP] %s: not refreshable (%d errors)", game.get("game_id"), exc.error_count())
            continue

        counters["processed"] += 1
        outcome = await _run_with_backoff(pipeline, request, max_retries, retry_base_seconds)
        if outcome is None:
            counters["failed"] += 1
        else:
            counters[outcome.value] += 1

    logger.info("[REFRESH DONE] %s", counters)
    return counters


async def _run_with_backoff(
    pipeline: PickPipeline,
    request: PickRequest,
    max_retries: int,
    retry_base_seconds: float,
) -> CommitOutcome | None:
    log_key = f"{request.game_id} ({request.market_type.value})"
    for attempt in range(max_retries):
        try:
            result = await pipeline.run(request)
            return result.outcome
        except UpstreamError as exc:
            if exc.kind != "unavailable" or attempt == max_retries - 1:
                logger.error("[FAILED] %s: %s (%s)", log_key, exc.message, exc.kind)
                return None
            delay = retry_base_seconds * (2 ** attempt)
            logger.warning(
                "[RETRY] %s: attempt %d/%d failed, retrying in %.1fs",
                log_key, attempt + 1, max_retries, delay,
            )
            await asyncio.sleep(delay)
        except PickServiceError as exc:
            logger.error("[FAILED] %s: %s", log_key, exc.message)
            return None
        except Exception:
            logger.exception("[FAILED] %s: unexpected error", log_key)
            return None
    return None
