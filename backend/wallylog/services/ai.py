"""Text generation against an OpenAI-compatible chat completions API."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Sequence

import httpx

from wallylog.core.config import settings
from wallylog.core.errors import UpstreamError, WallyLogError

logger = logging.getLogger(__name__)

_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")


class AIResponseError(WallyLogError):
    """The model answered, but not with the JSON we asked for."""

    status_code = 422


def _chat_payload(model: str, prompt: str) -> dict[str, Any]:
    return {"model": model, "messages": [{"role": "user", "content": prompt}]}


def _answer_text(data: Any) -> str:
    try:
        return str(data["choices"][0]["message"]["content"] or "").strip()
    except (KeyError, IndexError, TypeError):
        return ""


async def _complete(client: httpx.AsyncClient, model: str, prompt: str) -> str:
    resp = await client.post("/chat/completions", json=_chat_payload(model, prompt))
    if resp.status_code != 200:
        raise UpstreamError(f"{model}: {resp.status_code} {resp.text[:200]}", status=resp.status_code)
    return _answer_text(resp.json())


async def generate_text(
    prompt: str,
    *,
    models: Sequence[str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """
    Return the first non-empty answer, trying each configured model in order.

    Raises UpstreamError carrying the last failure when every model fails.
    A 429 from the provider is kept as the status so callers can report
    rate limiting.
    """
    if not settings.openrouter_api_key:
        raise UpstreamError("OPENROUTER_API_KEY missing")

    candidates = list(models or settings.ai_models)
    last_error: UpstreamError | None = None
    headers = {"Authorization": f"Bearer {settings.openrouter_api_key}", "X-Title": settings.app_name}
    async with httpx.AsyncClient(
        base_url=settings.openrouter_base_url,
        headers=headers,
        timeout=settings.ai_timeout_seconds,
        transport=transport,
    ) as client:
        for model in candidates:
            try:
                text = await _complete(client, model, prompt)
            except httpx.HTTPError as exc:
                last_error = UpstreamError(f"{model}: {exc}")
                logger.warning("ai_model_failed", extra={"model": model, "error": str(exc)})
                continue
            except UpstreamError as exc:
                last_error = exc
                logger.warning("ai_model_failed", extra={"model": model, "error": exc.message})
                continue
            if text:
                logger.info("ai_model_answered", extra={"model": model, "chars": len(text)})
                return text
            last_error = UpstreamError(f"{model}: empty answer")

    raise last_error or UpstreamError("no AI models configured")


def extract_json(text: str, *, error_message: str = "AI 응답을 처리할 수 없습니다.") -> dict[str, Any]:
    """Parse the outermost ``{...}`` block of a model answer (code fences and chatter are ignored)."""
    match = _JSON_BLOCK_RE.search(text or "")
    candidate = match.group(0) if match else (text or "")
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        logger.warning("ai_json_parse_failed", extra={"answer": (text or "")[:500]})
        raise AIResponseError(error_message) from exc
    if not isinstance(parsed, dict):
        raise AIResponseError(error_message)
    return parsed
