from __future__ import annotations

import json
import logging
from typing import List

import redis

from ..core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

HISTORY_KEY = "kyc-app-search-history"
THEME_KEY = "theme"
DEFAULT_THEME = "light"
THEMES = ("light", "dark")
DEFAULT_CLIENT_ID = "default"


def _get_sync_redis() -> redis.Redis:
    """
    Create a fresh sync Redis client per call so Celery workers
    don't hold onto closed event loops.
    """
    return redis.from_url(
        str(settings.REDIS_URL),
        decode_responses=True,
        socket_timeout=5,
        socket_connect_timeout=5,
    )


def _scoped(key: str, client_id: str | None) -> str:
    return f"prefs:{client_id or DEFAULT_CLIENT_ID}:{key}"


def get_search_history(client_id: str | None = None) -> List[str]:
    """Recent searches, most recent first. Unreadable history reads as empty."""
    client = _get_sync_redis()
    try:
        raw = client.get(_scoped(HISTORY_KEY, client_id))
        if raw is None:
            return []
        history = json.loads(raw)
        if not isinstance(history, list):
            return []
        return [str(item) for item in history if isinstance(item, str)]
    except (redis.RedisError, json.JSONDecodeError) as e:
        logger.warning("Could not load search history: %s", e, extra={"client_id": client_id})
        return []
    finally:
        client.close()


def add_to_history(query: str, client_id: str | None = None) -> List[str]:
    """
    Put `query` at the front of the history.

    Earlier entries equal to it ignoring case are removed and the list is
    capped at SEARCH_HISTORY_MAX_ITEMS.
    """
    query = (query or "").strip()
    history = get_search_history(client_id)
    if not query:
        return history

    new_history = [query] + [item for item in history if item.lower() != query.lower()]
    new_history = new_history[: settings.SEARCH_HISTORY_MAX_ITEMS]

    client = _get_sync_redis()
    try:
        client.set(_scoped(HISTORY_KEY, client_id), json.dumps(new_history))
    except redis.RedisError as e:
        logger.warning("Could not save search history: %s", e, extra={"client_id": client_id})
    finally:
        client.close()
    return new_history


def clear_history(client_id: str | None = None) -> None:
    client = _get_sync_redis()
    try:
        client.delete(_scoped(HISTORY_KEY, client_id))
    except redis.RedisError as e:
        logger.warning("Could not clear search history: %s", e, extra={"client_id": client_id})
    finally:
        client.close()


def get_theme(client_id: str | None = None) -> str:
    client = _get_sync_redis()
    try:
        theme = client.get(_scoped(THEME_KEY, client_id))
    except redis.RedisError as e:
        logger.warning("Could not load theme: %s", e, extra={"client_id": client_id})
        return DEFAULT_THEME
    finally:
        client.close()
    return theme if theme in THEMES else DEFAULT_THEME


def set_theme(theme: str, client_id: str | None = None) -> str:
    if theme not in THEMES:
        raise ValueError(f"theme must be one of {', '.join(THEMES)}")
    client = _get_sync_redis()
    try:
        client.set(_scoped(THEME_KEY, client_id), theme)
    except redis.RedisError as e:
        logger.warning("Could not save theme: %s", e, extra={"client_id": client_id})
    finally:
        client.close()
    return theme
