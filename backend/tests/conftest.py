"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import path setup plus in-memory stand-ins for
    the Mongo picks collection (with the (game_id, market_type) unique index)
    and the generation provider.
"""

from __future__ import annotations

import asyncio
import copy
import json
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]

if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from pymongo.errors import DuplicateKeyError  # noqa: E402

from pickcache.config import Settings  # noqa: E402
from pickcache.errors import UpstreamError  # noqa: E402

DIMS = 8

VALID_REASONING = (
    "Home side has won seven straight at home, the visitors are on the second "
    "night of a back-to-back and their starting goalie is questionable."
)


def pick_json(**overrides) -> str:
    payload = {"pick_side": "Home ML", "confidence": 72, "reasoning": VALID_REASONING}
    payload.update(overrides)
    return json.dumps(payload)


class FakePicksCollection:
    """Dict-backed collection enforcing the unique (game_id, market_type) key."""

    def __init__(self) -> None:
        self.rows: dict[tuple[str, str], dict] = {}
        self.write_log: list[str] = []

    @staticmethod
    def _key(doc: dict) -> tuple[str, str]:
        return doc["game_id"], doc["market_type"]

    @staticmethod
    def _project(doc: dict, projection: dict | None) -> dict:
        out = copy.deepcopy(doc)
        for field, flag in (projection or {}).items():
            if flag == 0:
                out.pop(field, None)
        return out

    def _matches(self, doc: dict, query: dict) -> bool:
        return all(doc.get(k) == v for k, v in query.items())

    async def find_one(self, query: dict, projection: dict | None = None):
        await asyncio.sleep(0)
        row = self.rows.get(self._key(query))
        if row is None or not self._matches(row, query):
            return None
        return self._project(row, projection)

    async def insert_one(self, doc: dict):
        await asyncio.sleep(0)
        key = self._key(doc)
        if key in self.rows:
            raise DuplicateKeyError("E11000 duplicate key error collection: analysis_memory")
        doc["_id"] = f"oid-{len(self.rows) + 1}"
        self.rows[key] = copy.deepcopy(doc)
        self.write_log.append(doc.get("pick_side"))
        return SimpleNamespace(inserted_id=doc["_id"])

    async def replace_one(self, query: dict, doc: dict):
        await asyncio.sleep(0)
        row = self.rows.get(self._key(query))
        if row is None or not self._matches(row, query):
            return SimpleNamespace(matched_count=0, modified_count=0)
        self.rows[self._key(query)] = {"_id": row.get("_id"), **copy.deepcopy(doc)}
        self.write_log.append(doc.get("pick_side"))
        return SimpleNamespace(matched_count=1, modified_count=1)

    async def find_one_and_update(self, query, update, *, upsert=False, projection=None, return_document=None):
        await asyncio.sleep(0)
        key = self._key(query)
        row = self.rows.get(key)
        if row is None:
            if not upsert:
                return None
            row = {"_id": f"oid-{len(self.rows) + 1}", **query}
        row.update(copy.deepcopy(update["$set"]))
        self.rows[key] = row
        self.write_log.append(row.get("pick_side"))
        return self._project(row, projection)


class FakeLLM:
    """Scripted generation provider. `completions` are raw strings or exceptions."""

    def __init__(self, completions=None, vector=None) -> None:
        self.completions = list(completions or [pick_json()])
        self.vector = [0.1] * DIMS if vector is None else vector
        self.completion_calls: list[tuple[str, str]] = []
        self.embed_calls: list[str] = []

    async def complete_json(self, system_prompt: str, user_prompt: str, *, timeout: float = 30.0) -> str:
        self.completion_calls.append((system_prompt, user_prompt))
        await asyncio.sleep(0)
        item = self.completions[0] if len(self.completions) == 1 else self.completions.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def embed(self, text: str, *, dimensions: int, timeout: float = 15.0):
        self.embed_calls.append(text)
        await asyncio.sleep(0)
        if isinstance(self.vector, Exception):
            raise self.vector
        return self.vector


def upstream_down() -> UpstreamError:
    return UpstreamError("Upstream analysis service unavailable", kind="unavailable")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        OPENAI_API_KEY="sk-test",
        MONGO_URI="mongodb://localhost:27017",
        EMBEDDING_DIMENSIONS=DIMS,
    )


@pytest.fixture
def collection() -> FakePicksCollection:
    return FakePicksCollection()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()
