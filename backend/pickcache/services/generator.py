"""
backend/pickcache/services/generator.py

Purpose:
    Produce a validated pick from game context: prompt the generation
    provider for a single JSON object, validate it against the pick schema,
    then embed the reasoning text. Each step has its own failure signal:
      - provider down / timeout / non-2xx      -> UpstreamError("unavailable")
      - empty or non-JSON body                 -> UpstreamError("invalid_output")
      - JSON that violates the pick schema     -> UpstreamError("schema_violation")
      - missing or mis-sized embedding vector  -> UpstreamError("unavailable")
    One attempt per request; nothing here retries.

Dependencies:
    - pydantic
    - pickcache.providers.openai_client
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from pickcache.errors import UpstreamError
from pickcache.models.pick import LLMPickOutput
from pickcache.providers.openai_client import OpenAIClient

logger = logging.getLogger("pickcache.generator")

REASONING_MIN_LENGTH = 50


@dataclass(frozen=True)
class GeneratedPick:
    pick_side: str
    confidence: int
    reasoning: str
    embedding: list[float]


def build_system_prompt(market_type: str, current_odds: int, reasoning_min_length: int) -> str:
    odds = f"+{current_odds}" if current_odds > 0 else str(current_odds)
    return (
        "You are a highly analytical, data-driven sports betting expert.\n"
        f"Analyze the provided matchup context specifically for the '{market_type}' market.\n"
        f"CRITICAL CONTEXT: The current odds are {odds}. Use this price to determine Expected Value (EV).\n"
        "Be decisive. Pick a side based on positive EV, key stats, and trends found in the context.\n"
        "Your response MUST be a single JSON object adhering strictly to this schema:\n"
        '{ "pick_side": string, "confidence": integer (1-100), '
        f'"reasoning": string (at least {reasoning_min_length} characters) }}\n'
        "No text outside the JSON object. Do not hedge."
    )


def build_user_prompt(game_context: dict[str, Any]) -> str:
    return f"Analyze this game context: {json.dumps(game_context, default=str, sort_keys=True)}"


def validate_pick_output(payload: Any, reasoning_min_length: int) -> tuple[LLMPickOutput | None, list[dict[str, str]]]:
    """Validate parsed model output. Returns (value, []) or (None, violations)."""
    if not isinstance(payload, dict):
        return None, [{"field": "", "message": f"expected a JSON object, got {type(payload).__name__}"}]
    try:
        output = LLMPickOutput.model_validate(payload)
    except ValidationError as exc:
        return None, [
            {
                "field": ".".join(str(p) for p in err.get("loc", ())),
                "message": err.get("msg", "invalid value"),
            }
            for err in exc.errors()
        ]
    if len(output.reasoning.strip()) < reasoning_min_length:
        return None, [{
            "field": "reasoning",
            "message": f"must be at least {reasoning_min_length} characters (got {len(output.reasoning.strip())})",
        }]
    return output, []


def _valid_vector(vector: Any, dimensions: int) -> bool:
    if not isinstance(vector, list) or len(vector) != dimensions:
        return False
    return all(
        isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
        for v in vector
    )


class PickGenerator:
    def __init__(
        self,
        client: OpenAIClient,
        *,
        embedding_dimensions: int = 1536,
        reasoning_min_length: int = REASONING_MIN_LENGTH,
        llm_timeout: float = 30.0,
        embedding_timeout: float = 15.0,
    ) -> None:
        self._client = client
        self.embedding_dimensions = embedding_dimensions
        self.reasoning_min_length = reasoning_min_length
        self._llm_timeout = llm_timeout
        self._embedding_timeout = embedding_timeout

    async def generate(
        self,
        game_context: dict[str, Any],
        market_type: str,
        current_odds: int,
        *,
        log_key: str = "",
    ) -> GeneratedPick:
        raw = await self._client.complete_json(
            build_system_prompt(market_type, current_odds, self.reasoning_min_length),
            build_user_prompt(game_context),
            timeout=self._llm_timeout,
        )

        if not raw or not raw.strip():
            logger.error("[LLM EMPTY] %s: analysis response had no content", log_key)
            raise UpstreamError("LLM returned empty content.", kind="invalid_output")
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("[LLM JSON PARSE ERROR] %s: %s | raw=%r", log_key, exc, raw[:2000])
            raise UpstreamError(
                "LLM returned invalid JSON structure.", kind="invalid_output", details=raw,
            ) from exc

        output, violations = validate_pick_output(parsed, self.reasoning_min_length)
        if output is None:
            logger.error("[LLM SCHEMA INVALID] %s: %s | raw=%r", log_key, violations, raw[:2000])
            raise UpstreamError(
                "Failed to generate a valid analysis structure",
                kind="schema_violation",
                details={"violations": violations, "raw": raw},
            )

        vector = await self._client.embed(
            output.reasoning,
            dimensions=self.embedding_dimensions,
            timeout=self._embedding_timeout,
        )
        if not _valid_vector(vector, self.embedding_dimensions):
            got = len(vector) if isinstance(vector, list) else None
            logger.error(
                "[EMBEDDING FAILED] %s: expected %d dims, got %s",
                log_key, self.embedding_dimensions, got,
            )
            raise UpstreamError("Embedding generation failed.", kind="unavailable", details={"dimensions": got})

        return GeneratedPick(
            pick_side=output.pick_side,
            confidence=output.confidence,
            reasoning=output.reasoning,
            embedding=[float(v) for v in vector],
        )
