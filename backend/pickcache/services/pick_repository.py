"""
backend/pickcache/services/pick_repository.py

Purpose:
    Persistence collaborator for cached picks. Reads never return the
    embedding vector. Unique-key rejections surface as PickConflictError so
    callers can arbitrate races; every other driver failure becomes a
    PersistenceError.

Dependencies:
    - pymongo
    - motor (collection handle injected)
"""

from __future__ import annotations

import logging
from typing import Any

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from pickcache.errors import PersistenceError, PickConflictError
from pickcache.models.pick import AnalysisRecord

logger = logging.getLogger("pickcache.pick_repository")

# Client-visible fields; the embedding is internal.
_PUBLIC_PROJECTION = {"_id": 0, "reasoning_embedding": 0}


def _key(game_id: str, market_type: str) -> dict[str, str]:
    return {"game_id": game_id, "market_type": market_type}


def _public(doc: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in doc.items() if k not in _PUBLIC_PROJECTION}


class PickRepository:
    def __init__(self, collection) -> None:
        self._collection = collection

    async def find(self, game_id: str, market_type: str) -> dict[str, Any] | None:
        try:
            return await self._collection.find_one(
                _key(game_id, market_type), _PUBLIC_PROJECTION
            )
        except PyMongoError as exc:
            logger.error("Pick read failed for %s (%s): %s", game_id, market_type, exc)
            raise PersistenceError("Database read operation failed", details=str(exc)) from exc

    async def insert(self, record: AnalysisRecord) -> dict[str, Any]:
        doc = record.to_document()
        try:
            await self._collection.insert_one(doc)
        except DuplicateKeyError as exc:
            raise PickConflictError(record.game_id, doc["market_type"]) from exc
        except PyMongoError as exc:
            logger.error("Pick insert failed for %s (%s): %s", record.game_id, doc["market_type"], exc)
            raise PersistenceError("Database write operation failed", details=str(exc)) from exc
        return _public(doc)

    async def replace_if_unchanged(
        self,
        record: AnalysisRecord,
        expected_created_at: Any,
    ) -> dict[str, Any] | None:
        """Replace the row only if it still carries the created_at we observed.

        Returns None when another writer replaced the row first.
        """
        doc = record.to_document()
        query = {**_key(record.game_id, doc["market_type"]), "created_at": expected_created_at}
        try:
            result = await self._collection.replace_one(query, doc)
        except DuplicateKeyError as exc:
            raise PickConflictError(record.game_id, doc["market_type"]) from exc
        except PyMongoError as exc:
            logger.error("Pick replace failed for %s (%s): %s", record.game_id, doc["market_type"], exc)
            raise PersistenceError("Database write operation failed", details=str(exc)) from exc
        if not result.matched_count:
            return None
        return _public(doc)

    async def upsert(self, record: AnalysisRecord) -> dict[str, Any]:
        """Last-write-wins upsert. created_at comes from the record, not a default."""
        doc = record.to_document()
        key = _key(record.game_id, doc["market_type"])
        fields = {k: v for k, v in doc.items() if k not in key}
        # Two concurrent upserts on a fresh key can both try to insert; the
        # loser sees DuplicateKeyError and the retry turns into an update.
        for attempt in range(2):
            try:
                saved = await self._collection.find_one_and_update(
                    key,
                    {"$set": fields},
                    upsert=True,
                    projection=_PUBLIC_PROJECTION,
                    return_document=ReturnDocument.AFTER,
                )
                return saved if saved is not None else _public(doc)
            except DuplicateKeyError as exc:
                if attempt == 0:
                    logger.info("Upsert race on %s (%s), retrying as update", record.game_id, doc["market_type"])
                    continue
                logger.error("Pick upsert failed twice for %s (%s): %s", record.game_id, doc["market_type"], exc)
                raise PersistenceError("Database write operation failed", details=str(exc)) from exc
            except PyMongoError as exc:
                logger.error("Pick upsert failed for %s (%s): %s", record.game_id, doc["market_type"], exc)
                raise PersistenceError("Database write operation failed", details=str(exc)) from exc
        raise PersistenceError("Database write operation failed")
