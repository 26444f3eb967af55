"""
backend/pickcache/database.py

Purpose:
    MongoDB connection bootstrap and index management. The (game_id,
    market_type) unique index on analysis_memory is the only synchronization
    primitive between concurrent pick generations.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - pickcache.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, OperationFailure

from pickcache.config import Settings

logger = logging.getLogger("pickcache.database")

PICKS_COLLECTION = "analysis_memory"
UPCOMING_GAMES_COLLECTION = "upcoming_games"


def connect_db(settings: Settings) -> tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]:
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=5,
    )
    return client, client[settings.MONGO_DB]


def close_db(client: AsyncIOMotorClient | None) -> None:
    if client:
        client.close()


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create indexes on startup. Idempotent, safe to run repeatedly."""

    # ---- Picks ----
    try:
        await db[PICKS_COLLECTION].create_index(
            [("game_id", 1), ("market_type", 1)],
            unique=True,
            name="game_market_unique",
        )
    except (DuplicateKeyError, OperationFailure) as exc:
        # Without this index concurrent generations cannot be arbitrated.
        logger.error("Could not create unique pick index: %s", exc)
        raise
    await db[PICKS_COLLECTION].create_index("created_at")
    await db[PICKS_COLLECTION].create_index("odds_at_generation")

    # ---- Upcoming games (written by the odds ingestion jobs) ----
    await db[UPCOMING_GAMES_COLLECTION].create_index([("status", 1), ("commence_time", 1)])
