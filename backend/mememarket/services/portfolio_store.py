"""
Portfolio Store - Persists one serialized Portfolio record per user

The key-value store is an opaque collaborator; the core only defines the
record shape (Portfolio.to_dict / Portfolio.from_dict).
"""
import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from loguru import logger

from ..models.portfolio import Portfolio


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self, prefix: str = "") -> List[str]:
        ...


class InMemoryKeyValueStore:
    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return [k for k in self._data if k.startswith(prefix)]


class JsonFileKeyValueStore(InMemoryKeyValueStore):
    """Whole store kept in one JSON document, rewritten on every change."""

    def __init__(self, path: str):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self):
        try:
            if self.path.exists():
                with open(self.path, 'r') as f:
                    data = json.load(f)
                self._data = dict(data.get('records', {}))
                logger.info(f"Loaded {len(self._data)} records from {self.path}")
        except Exception as e:
            logger.warning(f"Could not load store {self.path}: {e}")

    def _save(self):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            data = {
                'records': self._data,
                'saved_at': datetime.utcnow().isoformat() + 'Z',
            }
            with open(self.path, 'w') as f:
                json.dump(data, f, indent=2)
        except Exception as e:
            logger.warning(f"Could not save store {self.path}: {e}")

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._save()

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)
            self._save()


class PortfolioStore:
    """
    Portfolio repository over a key-value store.

    Live Portfolio objects are cached so every service mutates the same
    instance; `save` writes the serialized record back.
    """

    PREFIX = "portfolio:"

    def __init__(self, store: KeyValueStore, factory: Callable[[str], Portfolio]):
        self.store = store
        self.factory = factory
        self._cache: Dict[str, Portfolio] = {}
        self._lock = threading.RLock()

    @classmethod
    def key_for(cls, user_id: str) -> str:
        return f"{cls.PREFIX}{user_id}"

    def get(self, user_id: str) -> Optional[Portfolio]:
        with self._lock:
            if user_id in self._cache:
                return self._cache[user_id]
            record = self.store.get(self.key_for(user_id))
            if record is None:
                return None
            try:
                portfolio = Portfolio.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Discarding unreadable portfolio record for {user_id}: {e}")
                return None
            self._cache[user_id] = portfolio
            return portfolio

    def get_or_create(self, user_id: str) -> Portfolio:
        with self._lock:
            portfolio = self.get(user_id)
            if portfolio is None:
                portfolio = self.factory(user_id)
                self._cache[user_id] = portfolio
                self.save(portfolio)
            return portfolio

    def save(self, portfolio: Portfolio):
        with self._lock:
            self._cache[portfolio.user_id] = portfolio
            self.store.set(self.key_for(portfolio.user_id), portfolio.to_dict())

    def reset(self, user_id: str) -> Portfolio:
        """Replace the user's portfolio with a fresh one."""
        with self._lock:
            portfolio = self.factory(user_id)
            self.save(portfolio)
        logger.info(f"Reset portfolio for {user_id}")
        return portfolio

    def user_ids(self) -> List[str]:
        with self._lock:
            stored = {k[len(self.PREFIX):] for k in self.store.keys(self.PREFIX)}
            return sorted(stored | set(self._cache))

    def all(self) -> List[Portfolio]:
        portfolios = []
        for user_id in self.user_ids():
            portfolio = self.get(user_id)
            if portfolio is not None:
                portfolios.append(portfolio)
        return portfolios
