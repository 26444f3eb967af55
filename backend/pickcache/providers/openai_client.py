import logging
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from pickcache.errors import UpstreamError

logger = logging.getLogger("pickcache.openai_client")


def _safe_url(url: str) -> str:
    """Strip query params for safe logging."""
    parsed = urlparse(str(url))
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


class OpenAIClient:
    """Thin httpx wrapper over the OpenAI-compatible chat and embedding endpoints.

    No retries: a failed call raises UpstreamError(kind="unavailable") and the
    retry decision belongs to whoever issued the request.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        *,
        chat_model: str = "gpt-4o",
        embedding_model: str = "text-embedding-3-small",
        temperature: float = 0.2,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}"},
        )
        self.chat_model = chat_model
        self.embedding_model = embedding_model
        self.temperature = temperature

    async def _post(self, path: str, payload: dict, timeout: float, what: str) -> dict[str, Any]:
        try:
            resp = await self._client.post(path, json=payload, timeout=timeout)
        except httpx.TimeoutException as exc:
            logger.error("[openai] %s timed out after %.1fs", what, timeout)
            raise UpstreamError(f"Upstream {what} service unavailable", kind="unavailable", details=repr(exc)) from exc
        except httpx.HTTPError as exc:
            logger.error("[openai] %s request failed: %s", what, exc)
            raise UpstreamError(f"Upstream {what} service unavailable", kind="unavailable", details=repr(exc)) from exc

        if resp.status_code >= 400:
            logger.error(
                "[openai] %s returned %d on POST %s: %s",
                what, resp.status_code, _safe_url(str(resp.request.url)), resp.text[:500],
            )
            raise UpstreamError(
                f"Upstream {what} service unavailable",
                kind="unavailable",
                details={"status": resp.status_code, "body": resp.text[:2000]},
            )
        try:
            data = resp.json()
        except ValueError as exc:
            logger.error("[openai] %s returned a non-JSON envelope", what)
            raise UpstreamError(f"Upstream {what} service unavailable", kind="unavailable", details=resp.text[:2000]) from exc
        if not isinstance(data, dict):
            raise UpstreamError(f"Upstream {what} service unavailable", kind="unavailable", details=data)
        return data

    async def complete_json(self, system_prompt: str, user_prompt: str, *, timeout: float = 30.0) -> str:
        """Request a single JSON object completion. Returns the raw content ("" if absent)."""
        data = await self._post(
            "/chat/completions",
            {
                "model": self.chat_model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "response_format": {"type": "json_object"},
                "temperature": self.temperature,
            },
            timeout,
            "analysis",
        )
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return ""
        message = choices[0].get("message") or {}
        content = message.get("content")
        return content if isinstance(content, str) else ""

    async def embed(self, text: str, *, dimensions: int, timeout: float = 15.0) -> list | None:
        """Embed one text. Returns the first vector, or None if the response has none."""
        data = await self._post(
            "/embeddings",
            {"model": self.embedding_model, "input": text, "dimensions": dimensions},
            timeout,
            "embedding",
        )
        items = data.get("data") or []
        if not items or not isinstance(items[0], dict):
            return None
        return items[0].get("embedding")

    async def aclose(self) -> None:
        await self._client.aclose()
