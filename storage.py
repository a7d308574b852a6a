# storage.py
import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import redis

import config

logger = logging.getLogger("agriyield.storage")

STATUS_OK = "ok"
STATUS_MISSING = "missing"
STATUS_MALFORMED = "malformed"
STATUS_UNAVAILABLE = "unavailable"

ERROR_STALE = "stale_revision"
ERROR_STORAGE = "storage_error"

_redis_client: Optional[redis.Redis] = None


@dataclass
class CollectionRead:
    """One whole-collection read. `items` is always a list, even on failure."""
    items: List[Any] = field(default_factory=list)
    revision: int = 0
    status: str = STATUS_OK
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status in (STATUS_MALFORMED, STATUS_UNAVAILABLE)


@dataclass
class WriteResult:
    ok: bool
    revision: Optional[int] = None
    error: Optional[str] = None


def get_redis_client() -> redis.Redis:
    global _redis_client
    if _redis_client is not None:
        return _redis_client
    _redis_client = redis.from_url(config.REDIS_URL, decode_responses=True)
    logger.info("Using Redis at %s", config.REDIS_URL)
    return _redis_client


def build_key(*parts: Any) -> str:
    """
    Join the configured prefix and parts with ':'.
    """
    out = [config.STORE_KEY_PREFIX]
    for p in parts:
        out.append("null" if p is None else str(p))
    return ":".join(out)


def revision_key(key: str) -> str:
    return f"{key}:rev"


def _parse_revision(raw: Any) -> int:
    try:
        return int(raw) if raw is not None else 0
    except (TypeError, ValueError):
        return 0


def key_exists(client: redis.Redis, key: str) -> bool:
    try:
        return bool(client.exists(key))
    except redis.RedisError:
        logger.exception("exists check failed for key=%s", key)
        return False


def read_collection(client: redis.Redis, key: str) -> CollectionRead:
    """
    Read a JSON array stored under `key` together with its revision.
    Never raises: malformed content and storage errors degrade to an empty list
    with a status saying why.
    """
    try:
        raw, rev = client.mget(key, revision_key(key))
    except redis.RedisError as e:
        logger.exception("read failed for key=%s: %s", key, e)
        return CollectionRead(status=STATUS_UNAVAILABLE, error=str(e))

    revision = _parse_revision(rev)
    if raw is None:
        return CollectionRead(revision=revision, status=STATUS_MISSING)
    try:
        items = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.error("Failed to parse collection key=%s: %s", key, e)
        return CollectionRead(revision=revision, status=STATUS_MALFORMED, error=str(e))
    if not isinstance(items, list):
        logger.error("Collection key=%s does not hold a JSON array (got %s)", key, type(items).__name__)
        return CollectionRead(revision=revision, status=STATUS_MALFORMED, error="not_a_list")
    return CollectionRead(items=items, revision=revision)


def _replace(client: redis.Redis, key: str, payload: Optional[str],
             expected_revision: Optional[int]) -> WriteResult:
    rev_key = revision_key(key)
    try:
        with client.pipeline() as pipe:
            pipe.watch(rev_key)
            current = _parse_revision(pipe.get(rev_key))
            if expected_revision is not None and current != expected_revision:
                pipe.unwatch()
                logger.warning("stale write refused for key=%s (expected rev %s, found %s)",
                               key, expected_revision, current)
                return WriteResult(ok=False, revision=current, error=ERROR_STALE)
            pipe.multi()
            if payload is None:
                pipe.delete(key)
            else:
                pipe.set(key, payload)
            pipe.incr(rev_key)
            results = pipe.execute()
        return WriteResult(ok=True, revision=int(results[-1]))
    except redis.WatchError:
        logger.warning("concurrent write detected for key=%s", key)
        return WriteResult(ok=False, error=ERROR_STALE)
    except redis.RedisError as e:
        logger.exception("write failed for key=%s: %s", key, e)
        return WriteResult(ok=False, error=ERROR_STORAGE)


def write_collection(client: redis.Redis, key: str, items: List[Any],
                     expected_revision: Optional[int] = None) -> WriteResult:
    """
    Replace the whole collection under `key`. When `expected_revision` is given
    the write only happens if nobody wrote the key since that revision was read.
    """
    try:
        payload = json.dumps(items, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        logger.exception("could not serialize collection for key=%s: %s", key, e)
        return WriteResult(ok=False, error=ERROR_STORAGE)
    return _replace(client, key, payload, expected_revision)


def remove_collection(client: redis.Redis, key: str,
                      expected_revision: Optional[int] = None) -> WriteResult:
    return _replace(client, key, None, expected_revision)
