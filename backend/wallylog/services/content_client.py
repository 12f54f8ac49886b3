from __future__ import annotations

import logging
from typing import Any

import httpx

from wallylog.core.config import settings
from wallylog.core.errors import UpstreamError

logger = logging.getLogger(__name__)

PATTERN_FETCH_FAILED = "영어 패턴을 가져오지 못했습니다"
NEWS_FETCH_FAILED = "IT 뉴스를 가져오지 못했습니다"


class ContentClient:
    """Reads the published content feeds for the dispatch job."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.content_api_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.content_timeout_seconds
        self._transport = transport

    async def _get_json(self, path: str, failure_message: str) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(f"{self.base_url}{path}")
        except httpx.HTTPError as exc:
            raise UpstreamError(f"{failure_message}: {exc}") from exc
        if resp.status_code != 200:
            raise UpstreamError(f"{failure_message}: {resp.status_code}", status=resp.status_code)
        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamError(f"{failure_message}: invalid JSON") from exc
        if not isinstance(data, dict):
            raise UpstreamError(f"{failure_message}: unexpected payload")
        return data

    async def fetch_english_patterns(self) -> dict[str, Any]:
        return await self._get_json("/generate-english", PATTERN_FETCH_FAILED)

    async def fetch_it_news(self) -> dict[str, Any]:
        return await self._get_json("/generate-news", NEWS_FETCH_FAILED)
