"""
Content Provider - Fetches content items from Reddit's public JSON listings

The market core only depends on the ContentProvider protocol. A failed or
empty fetch means "no update this cycle"; nothing here fabricates content.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

import aiohttp
from loguru import logger

from ..models.content import ContentItem


REDDIT_BASE_URL = "https://www.reddit.com"


class ContentProvider(Protocol):
    async def fetch_trending(self, subreddit: Optional[str] = None, limit: int = 25) -> List[ContentItem]:
        ...

    async def search(self, query: str, limit: int = 25) -> List[ContentItem]:
        ...

    async def fetch_by_id(self, item_id: str) -> Optional[ContentItem]:
        ...


@dataclass
class ContentProviderConfig:
    """Configuration for the Reddit content provider."""
    base_url: str = REDDIT_BASE_URL
    user_agent: str = "mememarket/1.0"
    default_subreddit: str = "memes"
    timeout_seconds: float = 15.0
    max_limit: int = 100


class RedditContentProvider:
    """aiohttp client over /r/<sub>/hot.json, /search.json and /by_id."""

    def __init__(self, config: Optional[ContentProviderConfig] = None):
        self.config = config or ContentProviderConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self):
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            connector = aiohttp.TCPConnector(limit=10, limit_per_host=5)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                connector=connector,
                headers={"User-Agent": self.config.user_agent},
            )

    async def stop(self):
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def _get_listing(self, path: str, params: Dict[str, str]) -> List[ContentItem]:
        await self.start()
        url = f"{self.config.base_url}{path}"
        try:
            async with self._session.get(url, params=params) as resp:
                if resp.status != 200:
                    logger.warning(f"Content fetch {path} failed: HTTP {resp.status}")
                    return []
                payload = await resp.json(content_type=None)
        except Exception as e:
            logger.warning(f"Content fetch {path} failed: {e}")
            return []
        return self._parse_listing(payload)

    def _parse_listing(self, payload) -> List[ContentItem]:
        # /by_id returns a listing; some endpoints wrap it in a list
        if isinstance(payload, list):
            payload = payload[0] if payload else {}
        children = (payload or {}).get("data", {}).get("children", [])

        items = []
        for child in children:
            item = self._parse_post(child.get("data", {}))
            if item:
                items.append(item)
        return items

    def _parse_post(self, data: dict) -> Optional[ContentItem]:
        try:
            permalink = data.get("permalink")
            return ContentItem(
                id=data["id"],
                title=data.get("title", ""),
                subreddit=data.get("subreddit", ""),
                score=int(data.get("score", 0)),
                comment_count=int(data.get("num_comments", 0)),
                created_at=datetime.utcfromtimestamp(float(data["created_utc"])),
                author=data.get("author", ""),
                url=f"{self.config.base_url}{permalink}" if permalink else data.get("url", ""),
                thumbnail=data.get("thumbnail") or None,
                selftext=data.get("selftext") or None,
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed post: {e}")
            return None

    def _limit(self, limit: int) -> str:
        return str(max(1, min(limit, self.config.max_limit)))

    async def fetch_trending(self, subreddit: Optional[str] = None, limit: int = 25) -> List[ContentItem]:
        subreddit = subreddit or self.config.default_subreddit
        items = await self._get_listing(f"/r/{subreddit}/hot.json", {"limit": self._limit(limit)})
        logger.debug(f"Fetched {len(items)} trending items from r/{subreddit}")
        return items

    async def search(self, query: str, limit: int = 25) -> List[ContentItem]:
        if not query.strip():
            return []
        return await self._get_listing(
            "/search.json",
            {"q": query, "limit": self._limit(limit), "sort": "relevance"},
        )

    async def fetch_by_id(self, item_id: str) -> Optional[ContentItem]:
        items = await self._get_listing(f"/by_id/t3_{item_id}.json", {})
        return items[0] if items else None


class StaticContentProvider:
    """Serves a fixed set of items; used for offline simulation."""

    def __init__(self, items: Iterable[ContentItem] = ()):
        self._items: Dict[str, ContentItem] = {item.id: item for item in items}

    def update(self, items: Iterable[ContentItem]):
        for item in items:
            self._items[item.id] = item

    async def fetch_trending(self, subreddit: Optional[str] = None, limit: int = 25) -> List[ContentItem]:
        items = [i for i in self._items.values() if subreddit is None or i.subreddit.lower() == subreddit.lower()]
        return sorted(items, key=lambda i: i.score, reverse=True)[:limit]

    async def search(self, query: str, limit: int = 25) -> List[ContentItem]:
        needle = query.lower()
        return [i for i in self._items.values() if needle in i.title.lower()][:limit]

    async def fetch_by_id(self, item_id: str) -> Optional[ContentItem]:
        return self._items.get(item_id)
