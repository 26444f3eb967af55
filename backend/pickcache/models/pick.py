"""
backend/pickcache/models/pick.py

Purpose:
    Pydantic contracts for cached picks: the validated request body, the
    model output schema expected from the generation provider, the stored
    analysis record and the client-facing response (embedding excluded).

Dependencies:
    - pydantic
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

from pickcache.utils import parse_timestamp


class MarketType(str, Enum):
    MONEYLINE = "moneyline"
    PUCKLINE = "puckline"
    TOTAL = "total"
    PROP = "prop"


class PickRequest(BaseModel):
    """Request body for fetching or generating a pick."""
    game_id: str = Field(min_length=1)
    market_type: MarketType = MarketType.MONEYLINE
    current_odds: StrictInt
    game_context: dict[str, Any]

    @field_validator("game_id")
    @classmethod
    def _game_id_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("game_id cannot be empty")
        return value

    @field_validator("game_context")
    @classmethod
    def _context_not_empty(cls, value: dict[str, Any]) -> dict[str, Any]:
        if not value:
            raise ValueError("game_context cannot be empty")
        return value


class LLMPickOutput(BaseModel):
    """Shape the generation provider must return.

    The reasoning floor is applied by the generator, since it is configured
    per deployment.
    """
    model_config = ConfigDict(extra="ignore")

    pick_side: str = Field(min_length=1)
    confidence: int = Field(ge=1, le=100)
    reasoning: str

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence_is_number(cls, value: Any) -> Any:
        # No bools or numeric strings; integral floats such as 75.0 still pass.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("confidence must be an integer")
        return value

    @field_validator("pick_side")
    @classmethod
    def _pick_side_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("pick_side cannot be empty")
        return value


class AnalysisRecord(BaseModel):
    """Full pick document as stored in MongoDB (one per game_id + market_type)."""
    game_id: str
    market_type: MarketType
    pick_side: str
    confidence_score: int = Field(ge=1, le=100)
    reasoning_text: str
    reasoning_embedding: list[float]
    odds_at_generation: int
    created_at: datetime

    def to_document(self) -> dict[str, Any]:
        doc = self.model_dump()
        doc["market_type"] = self.market_type.value
        return doc


class PickResponse(BaseModel):
    """Pick data returned to the client."""
    game_id: str
    market_type: MarketType
    pick_side: str
    confidence_score: int
    reasoning_text: str
    odds_at_generation: int | None = None
    created_at: datetime | None = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _created_at_utc_millis(cls, value: Any) -> datetime | None:
        # Mongo returns naive UTC at millisecond precision; render fresh writes the same way.
        ts = parse_timestamp(value)
        if ts is None:
            return None
        return ts.replace(microsecond=ts.microsecond // 1000 * 1000)
