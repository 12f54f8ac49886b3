"""GitHub Issues used as the subscription record store.

The rest of the application only depends on :class:`RecordStore`; the GitHub
adapter below is the production implementation and tests substitute an
in-memory fake.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, Sequence

import httpx

from wallylog.core.config import Settings, settings
from wallylog.core.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

PER_PAGE = 100
MAX_PAGES = 50


@dataclass(frozen=True)
class Issue:
    number: int
    title: str
    body: str
    labels: tuple[str, ...] = field(default_factory=tuple)
    created_at: datetime | None = None


@dataclass(frozen=True)
class Comment:
    id: int
    body: str
    created_at: datetime


class RecordStore(Protocol):
    async def list_issues(
        self,
        *,
        state: str = "open",
        labels: Sequence[str] | None = None,
        creator: str | None = None,
    ) -> list[Issue]: ...

    async def list_comments(self, issue_number: int) -> list[Comment]: ...

    async def post_comment(self, issue_number: int, body: str) -> Comment: ...

    async def create_issue(self, title: str, body: str, labels: Sequence[str]) -> Issue: ...


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    # GitHub returns "2024-05-01T09:30:00Z"; fromisoformat only accepts the Z suffix from 3.11.
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def issue_from_json(data: dict[str, Any]) -> Issue:
    labels = tuple(
        str(label.get("name") if isinstance(label, dict) else label) for label in data.get("labels") or []
    )
    return Issue(
        number=int(data["number"]),
        title=data.get("title") or "",
        body=data.get("body") or "",
        labels=labels,
        created_at=parse_timestamp(data.get("created_at")),
    )


def comment_from_json(data: dict[str, Any]) -> Comment:
    created_at = parse_timestamp(data.get("created_at"))
    if created_at is None:
        raise UpstreamError("comment without created_at")
    return Comment(id=int(data.get("id") or 0), body=data.get("body") or "", created_at=created_at)


class GitHubIssueStore:
    def __init__(
        self,
        *,
        token: str,
        repository: str,
        api_url: str = "https://api.github.com",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.repository = repository
        self._base = f"{api_url.rstrip('/')}/repos/{repository}/issues"
        self._timeout = timeout
        self._transport = transport
        self._headers = {
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github.v3+json",
            "Content-Type": "application/json",
        }

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "GitHubIssueStore":
        if not config.github_token or not config.github_repository:
            raise ConfigurationError("GitHub 설정이 올바르지 않습니다. GITHUB_TOKEN과 GITHUB_REPOSITORY를 확인해주세요.")
        return cls(
            token=config.github_token,
            repository=config.github_repository,
            api_url=config.github_api_url,
            timeout=config.github_timeout_seconds,
        )

    async def _send(self, method: str, url: str, *, action: str, **kwargs: Any) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, headers=self._headers, transport=self._transport
            ) as client:
                resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"{action} failed: {exc}") from exc
        if resp.status_code >= 400:
            logger.warning(
                "github_request_failed",
                extra={"action": action, "status_code": resp.status_code, "response": resp.text[:500]},
            )
            raise UpstreamError(f"{action} failed: {resp.status_code} {resp.text[:200]}", status=resp.status_code)
        return resp

    async def _request(self, method: str, url: str, *, action: str, **kwargs: Any) -> Any:
        resp = await self._send(method, url, action=action, **kwargs)
        return resp.json() if resp.content else None

    async def _get_all(self, url: str, *, action: str, params: dict[str, Any]) -> list[Any]:
        """GET every page of a list endpoint by following the Link header."""
        items: list[Any] = []
        next_url: str | None = url
        page_params: dict[str, Any] | None = params
        for _ in range(MAX_PAGES):
            if next_url is None:
                return items
            resp = await self._send("GET", next_url, action=action, params=page_params)
            items.extend(resp.json() if resp.content else [])
            # The next link already carries the query string.
            next_url = resp.links.get("next", {}).get("url")
            page_params = None
        if next_url is not None:
            logger.warning("github_pagination_truncated", extra={"action": action, "pages": MAX_PAGES})
        return items

    async def list_issues(
        self,
        *,
        state: str = "open",
        labels: Sequence[str] | None = None,
        creator: str | None = None,
    ) -> list[Issue]:
        params: dict[str, Any] = {"state": state, "per_page": PER_PAGE}
        if labels:
            params["labels"] = ",".join(labels)
        if creator:
            params["creator"] = creator
        data = await self._get_all(self._base, action="list issues", params=params)
        # The issues endpoint also returns pull requests.
        return [issue_from_json(item) for item in data if "pull_request" not in item]

    async def list_comments(self, issue_number: int) -> list[Comment]:
        data = await self._get_all(
            f"{self._base}/{issue_number}/comments", action="list comments", params={"per_page": PER_PAGE}
        )
        return [comment_from_json(item) for item in data]

    async def post_comment(self, issue_number: int, body: str) -> Comment:
        data = await self._request(
            "POST", f"{self._base}/{issue_number}/comments", action="comment", json={"body": body}
        )
        return comment_from_json(data)

    async def create_issue(self, title: str, body: str, labels: Sequence[str]) -> Issue:
        data = await self._request(
            "POST", self._base, action="create issue", json={"title": title, "body": body, "labels": list(labels)}
        )
        return issue_from_json(data)
