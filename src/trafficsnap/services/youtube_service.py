from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence

import httpx

from ..core.config import settings
from ..core.errors import CatalogError, QuotaExceeded
from ..schemas.traffic import VideoMetadata

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 50
_QUOTA_REASONS = {"quotaExceeded", "dailyLimitExceeded", "rateLimitExceeded"}


class CatalogClient(Protocol):
    def fetch_batch(self, ids: Sequence[str], api_key: str) -> list[VideoMetadata]: ...


def _best_thumbnail(thumbnails: dict) -> str | None:
    for size in ("maxres", "high", "medium", "default"):
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return None


class YouTubeCatalogClient:
    """Batch metadata lookups against the YouTube Data API v3."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(
            base_url=base_url or settings.youtube_api_url,
            timeout=timeout_s or settings.youtube_timeout_s,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "YouTubeCatalogClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _get(self, path: str, params: dict[str, Any]) -> dict:
        try:
            resp = self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise CatalogError(f"request to {path} failed: {e}") from e

        try:
            payload = resp.json() or {}
        except ValueError:
            payload = {}

        if resp.is_success and "error" not in payload:
            return payload

        error = payload.get("error") or {}
        message = error.get("message") or resp.text[:500]
        reasons = {e.get("reason") for e in error.get("errors") or []}
        status = error.get("code") or resp.status_code
        if reasons & _QUOTA_REASONS:
            logger.warning("catalog quota exhausted on %s: %s", path, message)
            raise QuotaExceeded(message, status_code=status)
        raise CatalogError(message, status_code=status)

    def fetch_batch(self, ids: Sequence[str], api_key: str) -> list[VideoMetadata]:
        if not ids:
            return []
        if len(ids) > MAX_BATCH_SIZE:
            raise ValueError(f"at most {MAX_BATCH_SIZE} ids per batch, got {len(ids)}")

        videos = self._get(
            "/videos",
            {"part": "snippet,contentDetails,statistics", "id": ",".join(ids), "key": api_key},
        ).get("items") or []
        if not videos:
            return []

        channel_ids = sorted({v["snippet"]["channelId"] for v in videos if v.get("snippet", {}).get("channelId")})
        channels: dict[str, dict] = {}
        if channel_ids:
            items = self._get(
                "/channels",
                {"part": "snippet,statistics", "id": ",".join(channel_ids), "key": api_key},
            ).get("items") or []
            channels = {c["id"]: c for c in items}

        result = []
        for item in videos:
            snippet = item.get("snippet") or {}
            channel = channels.get(snippet.get("channelId"), {})
            result.append(
                VideoMetadata(
                    id=item["id"],
                    title=snippet.get("title"),
                    thumbnail=_best_thumbnail(snippet.get("thumbnails") or {}),
                    channel_id=snippet.get("channelId"),
                    channel_title=snippet.get("channelTitle"),
                    channel_avatar=_best_thumbnail((channel.get("snippet") or {}).get("thumbnails") or {}),
                    published_at=snippet.get("publishedAt"),
                    view_count=(item.get("statistics") or {}).get("viewCount"),
                    duration=(item.get("contentDetails") or {}).get("duration"),
                )
            )
        logger.debug("fetched %d/%d videos from catalog", len(result), len(ids))
        return result
