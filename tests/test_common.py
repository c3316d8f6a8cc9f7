from datetime import date

import pytest

from flcseek.cache import TTLCache
from flcseek.models import RateLimitRecord
from flcseek.ratelimit import DatabaseRateLimiter, FixedWindowRateLimiter
from flcseek.utils.common import (
    normalize_day_month, normalize_phone, safe_percent, trailing_week_starts, week_bounds_for,
)


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


# ─── rate limiting ────────────────────────────────────────────────────────────
def test_fixed_window_blocks_after_max():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(2, 60, clock=clock)

    assert limiter.hit("1.2.3.4", "/auth/login").remaining == 1
    assert limiter.hit("1.2.3.4", "/auth/login").allowed
    blocked = limiter.hit("1.2.3.4", "/auth/login")
    assert not blocked.allowed
    assert blocked.retry_after == 60

    # other identifiers have their own window
    assert limiter.hit("5.6.7.8", "/auth/login").allowed

    clock.now += 61
    assert limiter.hit("1.2.3.4", "/auth/login").allowed


def test_fixed_window_prune():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(1, 10, clock=clock)
    limiter.hit("a", "x")
    clock.now += 11
    assert limiter.prune() == 1


def test_database_limiter_shares_counts(session_factory):
    clock = FakeClock(600.0)
    one = DatabaseRateLimiter(session_factory, 2, 300, clock=clock)
    two = DatabaseRateLimiter(session_factory, 2, 300, clock=clock)

    assert one.hit("ip", "/auth/login").allowed
    assert two.hit("ip", "/auth/login").allowed
    decision = one.hit("ip", "/auth/login")
    assert not decision.allowed
    assert decision.retry_after == 300

    clock.now += 300
    assert two.hit("ip", "/auth/login").allowed

    clock.now += 300
    assert one.prune() == 1


def test_fixed_window_sweeps_expired_keys_on_hit():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(5, 10, clock=clock)
    for i in range(1000):
        limiter.hit(f"10.0.{i // 256}.{i % 256}", "/auth/login")
        clock.now += 1
    # only windows opened in the last ~two window lengths can survive a sweep
    assert len(limiter) <= 20


def test_fixed_window_sweeps_when_map_is_full():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(5, 100, clock=clock, max_entries=2)
    start = clock.now
    for offset, ip in ((0, "a"), (50, "b"), (100, "c")):
        clock.now = start + offset
        limiter.hit(ip, "/auth/login")
    assert len(limiter) == 2

    # "b" has expired but the periodic sweep is not due yet; the size bound forces it
    clock.now = start + 160
    limiter.hit("d", "/auth/login")
    assert len(limiter) == 2


def test_database_limiter_deletes_finished_windows_on_hit(session_factory):
    clock = FakeClock(600.0)
    limiter = DatabaseRateLimiter(session_factory, 5, 300, clock=clock)
    limiter.hit("a", "/auth/login")

    clock.now += 600
    limiter.hit("b", "/auth/login")

    db = session_factory()
    try:
        assert [r.identifier for r in db.query(RateLimitRecord)] == ["b"]
    finally:
        db.close()


# ─── response cache ───────────────────────────────────────────────────────────
def test_ttl_cache_expires():
    clock = FakeClock()
    cache = TTLCache(15, clock=clock)
    cache.set("/milestones?", {"milestones": []})
    assert cache.get("/milestones?") == {"milestones": []}
    clock.now += 15
    assert cache.get("/milestones?") is None


def test_ttl_cache_invalidate_prefix_and_bound():
    cache = TTLCache(30, clock=FakeClock(), max_entries=2)
    cache.set("/milestones?a", 1)
    cache.set("/groups?", 2)
    cache.invalidate("/milestones")
    assert cache.get("/milestones?a") is None
    assert cache.get("/groups?") == 2

    cache.set("b", 3)
    cache.set("c", 4)
    assert len(cache) == 2
    assert cache.get("/groups?") is None


# ─── helpers ──────────────────────────────────────────────────────────────────
@pytest.mark.parametrize("numer,denom,expected", [(2, 3, 67), (1, 3, 33), (1, 2, 50), (0, 0, 0), (5, 5, 100)])
def test_safe_percent(numer, denom, expected):
    assert safe_percent(numer, denom) == expected


def test_week_helpers():
    assert week_bounds_for(date(2025, 3, 16)) == (date(2025, 3, 10), date(2025, 3, 16))
    assert trailing_week_starts(date(2025, 3, 17), 2) == [date(2025, 3, 10), date(2025, 3, 17)]


@pytest.mark.parametrize("raw,expected", [
    ("7-3", "07-03"), ("29/02", "29-02"), ("31-04", None), ("2025-03-07", None), (date(1990, 12, 1), "01-12"),
])
def test_normalize_day_month(raw, expected):
    assert normalize_day_month(raw) == expected


def test_normalize_phone():
    assert normalize_phone("+233 (24) 123-4567") == "233241234567"
    assert normalize_phone(241234567.0) == "241234567"
    assert normalize_phone(None) == ""
