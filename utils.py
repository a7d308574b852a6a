# utils.py
import logging
import threading
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import requests

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_clock_lock = threading.Lock()
_last_micros = 0


def request_with_retries(method: str, url: str, headers=None, json_payload=None, data=None,
                         timeout=30, max_retries=4, backoff_factor=1.0) -> requests.Response:
    attempt = 0
    while True:
        try:
            if method.upper() == "POST":
                r = requests.post(url, headers=headers, json=json_payload, data=data, timeout=timeout)
            elif method.upper() == "GET":
                r = requests.get(url, headers=headers, params=json_payload, timeout=timeout)
            else:
                raise RuntimeError("Unsupported method")

            if 500 <= r.status_code < 600:
                attempt += 1
                if attempt > max_retries:
                    return r
                wait = backoff_factor * (2 ** (attempt - 1))
                logger.warning(f"[retry] {url} -> HTTP {r.status_code}. sleeping {wait}s (attempt {attempt})")
                time.sleep(wait)
                continue
            return r
        except requests.exceptions.RequestException as e:
            attempt += 1
            if attempt > max_retries:
                raise
            wait = backoff_factor * (2 ** (attempt - 1))
            logger.warning(f"[retry-exc] {url} -> {repr(e)}. sleeping {wait}s (attempt {attempt})")
            time.sleep(wait)
            continue


def instant_micros(when: datetime) -> int:
    """Microseconds since the epoch. Naive datetimes are local time."""
    if when.tzinfo is None:
        when = when.astimezone()
    return (when - _EPOCH) // timedelta(microseconds=1)


def next_instant_micros() -> int:
    """
    Microseconds since the epoch, strictly increasing within this process even
    when the wall clock stalls or steps back.
    """
    global _last_micros
    with _clock_lock:
        now = time.time_ns() // 1000
        if now <= _last_micros:
            now = _last_micros + 1
        _last_micros = now
        return now


def make_record_id(when: Optional[datetime] = None) -> str:
    """
    Opaque id for farmers and lands: '<16-digit micros>-<7 hex>'. Ids compare
    lexicographically in creation order. Pass `when` to date a record in the
    past (seed data).
    """
    micros = next_instant_micros() if when is None else instant_micros(when)
    return f"{micros:016d}-{uuid.uuid4().hex[:7]}"


def format_instant(when: datetime) -> str:
    """ISO-8601 UTC instant with microseconds, e.g. '2025-03-07T14:05:09.123456Z'."""
    if when.tzinfo is None:
        when = when.astimezone()
    when = when.astimezone(timezone.utc)
    return when.isoformat(timespec="microseconds").replace("+00:00", "Z")


def make_instant_id() -> str:
    return format_instant(_EPOCH + timedelta(microseconds=next_instant_micros()))
