# flcseek/ratelimit.py
"""
Fixed-window login throttling.

`FixedWindowRateLimiter` keeps counters in process memory and resets on
restart. `DatabaseRateLimiter` keeps them in rate_limit_records so every
instance behind a load balancer sees the same count; the two backends are
never synced, pick one with RATE_LIMIT_BACKEND.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple
import logging
import math
import threading
import time

from sqlalchemy.exc import IntegrityError

from flcseek.config import settings
from flcseek.models import RateLimitRecord
from flcseek.utils.common import Clock

log = logging.getLogger(__name__)


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int   # seconds until the window resets; 0 when allowed
    reset_at: float    # epoch seconds


class FixedWindowRateLimiter:
    """
    In-process counters. Expired windows are swept from inside `hit()` once
    per window length, or sooner when the map grows past `max_entries`.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Clock = time.time,
        max_entries: int = 10_000,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[Tuple[str, str], Tuple[int, float]] = {}
        self._last_prune: Optional[float] = None
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def hit(self, identifier: str, endpoint: str) -> RateLimitDecision:
        now = self._clock()
        key = (identifier, endpoint)
        with self._lock:
            if (
                self._last_prune is None
                or now - self._last_prune >= self.window_seconds
                or len(self._entries) >= self.max_entries
            ):
                self._drop_expired(now)
            count, window_start = self._entries.get(key, (0, now))
            if now - window_start >= self.window_seconds:
                count, window_start = 0, now
            count += 1
            self._entries[key] = (count, window_start)
        return _decision(count, self.max_requests, window_start + self.window_seconds, now)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def prune(self) -> int:
        """Drop expired windows; returns how many were removed."""
        now = self._clock()
        with self._lock:
            return self._drop_expired(now)

    def _drop_expired(self, now: float) -> int:
        # caller holds the lock
        expired = [k for k, (_, start) in self._entries.items() if now - start >= self.window_seconds]
        for k in expired:
            del self._entries[k]
        self._last_prune = now
        return len(expired)


class DatabaseRateLimiter:
    """
    Shared counters in rate_limit_records. Rows of finished windows are
    deleted from inside `hit()` at most once per window length per instance.
    """

    def __init__(self, session_factory, max_requests: int, window_seconds: int, clock: Clock = time.time):
        self.session_factory = session_factory
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._last_prune: Optional[float] = None

    def _window_start(self, now: float) -> datetime:
        aligned = math.floor(now / self.window_seconds) * self.window_seconds
        return datetime.fromtimestamp(aligned, tz=timezone.utc)

    def hit(self, identifier: str, endpoint: str) -> RateLimitDecision:
        now = self._clock()
        window_start = self._window_start(now)
        db = self.session_factory()
        try:
            count = self._increment(db, identifier, endpoint, window_start)
        finally:
            db.close()
        if self._last_prune is None or now - self._last_prune >= self.window_seconds:
            removed = self.prune()
            if removed:
                log.info("Pruned %d expired rate limit window(s)", removed)
        reset_at = window_start.timestamp() + self.window_seconds
        return _decision(count, self.max_requests, reset_at, now)

    def _increment(self, db, identifier: str, endpoint: str, window_start: datetime) -> int:
        for attempt in range(2):
            row = (
                db.query(RateLimitRecord)
                .filter_by(identifier=identifier, endpoint=endpoint, window_start=window_start)
                .first()
            )
            if row:
                row.request_count += 1
            else:
                row = RateLimitRecord(
                    identifier=identifier, endpoint=endpoint, window_start=window_start, request_count=1
                )
                db.add(row)
            try:
                db.commit()
                return row.request_count
            except IntegrityError:
                # another instance opened the same window first; count on its row
                db.rollback()
                if attempt:
                    raise
        raise RuntimeError("unreachable")

    def prune(self) -> int:
        now = self._clock()
        self._last_prune = now
        cutoff = datetime.fromtimestamp(now - self.window_seconds, tz=timezone.utc)
        db = self.session_factory()
        try:
            n = db.query(RateLimitRecord).filter(RateLimitRecord.window_start < cutoff).delete()
            db.commit()
            return n
        finally:
            db.close()


def _decision(count: int, limit: int, reset_at: float, now: float) -> RateLimitDecision:
    if count > limit:
        return RateLimitDecision(False, limit, 0, max(1, math.ceil(reset_at - now)), reset_at)
    return RateLimitDecision(True, limit, limit - count, 0, reset_at)


_login_limiter = None


def get_login_limiter():
    """FastAPI dependency returning the process-wide login limiter."""
    global _login_limiter
    if _login_limiter is None:
        if settings.RATE_LIMIT_BACKEND == "database":
            from flcseek.db import SessionLocal
            _login_limiter = DatabaseRateLimiter(
                SessionLocal, settings.LOGIN_RATE_LIMIT_MAX, settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS
            )
        else:
            _login_limiter = FixedWindowRateLimiter(
                settings.LOGIN_RATE_LIMIT_MAX, settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS
            )
        log.info("Login rate limiting via %s backend", settings.RATE_LIMIT_BACKEND)
    return _login_limiter
