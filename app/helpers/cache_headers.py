"""Cache-Control header values for API responses."""

from datetime import timedelta

NO_STORE = "no-store, no-cache, must-revalidate, max-age=0"


def _seconds(value: timedelta) -> int:
    return max(int(value.total_seconds()), 0)


def public_cache_control(max_age: timedelta, stale_while_revalidate: timedelta) -> str:
    """Shared-cacheable header for anonymous feed data, derived from the feed TTL."""
    age = _seconds(max_age)
    return f"public, max-age={age}, s-maxage={age}, stale-while-revalidate={_seconds(stale_while_revalidate)}"


def private_cache_control(max_age: timedelta) -> str:
    """Browser-only header for per-user aggregates."""
    age = _seconds(max_age)
    return f"private, max-age={age}, stale-while-revalidate={age}"
