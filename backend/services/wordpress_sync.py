"""WordPress REST reads: live posts and pages, and the one-way post pull into ``wordpress_posts``."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from backend.repositories.collections_repository import CollectionsRepository
from shared.errors import BackendUnavailableError
from shared.models import SyncResult, WordPressContent


logger = logging.getLogger(__name__)

WORDPRESS_COLLECTION = "wordpress_posts"
POSTS_PER_PAGE = 100


def _rendered(value: object) -> str:
    if isinstance(value, dict):
        return str(value.get("rendered") or "")
    return str(value or "")


def post_payload(post: dict[str, Any], synced_at: datetime) -> dict[str, object]:
    """Map a WordPress REST post onto the stored record fields."""

    raw_id = post.get("id")
    if isinstance(raw_id, bool) or not isinstance(raw_id, int):
        raise ValueError(f"WordPress post without numeric id: {raw_id!r}")

    return {
        "wp_id": raw_id,
        "title": _rendered(post.get("title")),
        "content": _rendered(post.get("content")),
        "date": post.get("date_gmt") or post.get("date"),
        "last_modified": post.get("modified_gmt") or post.get("modified"),
        "slug": str(post.get("slug") or ""),
        "synced_at": synced_at,
    }


class WordPressSyncService:
    def __init__(
        self,
        repository: CollectionsRepository,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        timeout_seconds: float = 15.0,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._timeout_seconds = timeout_seconds

    def _fetch_list(self, wp_url: str, endpoint: str) -> list[dict[str, Any]]:
        request = Request(
            url=f"{wp_url.rstrip('/')}/{endpoint}?_embed&per_page={POSTS_PER_PAGE}",
            headers={"Accept": "application/json"},
            method="GET",
        )
        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:  # noqa: S310 - URL comes from trusted config or an authenticated caller
                payload = json.loads(response.read().decode("utf-8"))
        except HTTPError as exc:
            if exc.code >= 500:
                raise BackendUnavailableError(f"WordPress request failed with status {exc.code}") from exc
            raise RuntimeError(f"WordPress request failed with status {exc.code}") from exc
        except (URLError, TimeoutError, ConnectionError) as exc:
            raise BackendUnavailableError(f"WordPress is unreachable: {exc}") from exc

        if not isinstance(payload, list):
            raise ValueError(f"Unexpected WordPress response: expected a list of {endpoint}")
        return [item for item in payload if isinstance(item, dict)]

    def fetch_posts(self, wp_url: str) -> list[dict[str, Any]]:
        return self._fetch_list(wp_url, "posts")

    def fetch_content(self, wp_url: str) -> WordPressContent:
        """Return current posts and pages as WordPress serves them, without storing anything."""

        return WordPressContent(
            posts=self._fetch_list(wp_url, "posts"),
            pages=self._fetch_list(wp_url, "pages"),
        )

    def sync(self, wp_url: str) -> SyncResult:
        """Upsert every fetched post keyed by its WordPress id; safe to re-run."""

        posts = self.fetch_posts(wp_url)
        synced_at = self._clock()
        created = 0
        updated = 0

        for post in posts:
            data = post_payload(post, synced_at)
            existing = self._repository.find_records(
                WORDPRESS_COLLECTION,
                field="wp_id",
                value=data["wp_id"],
                limit=1,
            )
            if existing:
                changes = {key: value for key, value in data.items() if key != "wp_id"}
                self._repository.update_record(WORDPRESS_COLLECTION, existing[0].id, changes)
                updated += 1
                logger.info("wordpress_post_updated wp_id=%s", data["wp_id"])
            else:
                self._repository.create_record(WORDPRESS_COLLECTION, data)
                created += 1
                logger.info("wordpress_post_added wp_id=%s", data["wp_id"])

        return SyncResult(
            success=True,
            synced=len(posts),
            created=created,
            updated=updated,
            message=f"Synced {len(posts)} posts successfully",
        )
