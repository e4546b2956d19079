"""
Content item snapshot as delivered by the content provider
"""
from datetime import datetime
from typing import Optional
from dataclasses import dataclass


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace('Z', ''))


@dataclass
class ContentItem:
    """An externally sourced post. Immutable per fetch; re-fetch to refresh."""
    id: str
    title: str
    subreddit: str
    score: int
    comment_count: int
    created_at: datetime
    author: str = ""
    url: str = ""
    thumbnail: Optional[str] = None
    selftext: Optional[str] = None

    def age_hours(self, now: Optional[datetime] = None) -> float:
        """Hours since the post was created."""
        now = now or datetime.utcnow()
        return (now - self.created_at).total_seconds() / 3600

    @property
    def has_image(self) -> bool:
        return bool(self.thumbnail) and self.thumbnail not in ("self", "default", "nsfw", "spoiler")

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'title': self.title,
            'subreddit': self.subreddit,
            'score': self.score,
            'comment_count': self.comment_count,
            'created_at': self.created_at.isoformat() + 'Z',
            'author': self.author,
            'url': self.url,
            'thumbnail': self.thumbnail,
            'selftext': self.selftext,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ContentItem':
        return cls(
            id=data['id'],
            title=data.get('title', ''),
            subreddit=data.get('subreddit', ''),
            score=int(data.get('score', 0)),
            comment_count=int(data.get('comment_count', 0)),
            created_at=_parse_ts(data['created_at']),
            author=data.get('author', ''),
            url=data.get('url', ''),
            thumbnail=data.get('thumbnail'),
            selftext=data.get('selftext'),
        )
