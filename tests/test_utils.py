from datetime import date, datetime
from decimal import Decimal

import pytest

from gestionale.utils.cache import TTLCache
from gestionale.utils.cancellation import CancellationRegistry
from gestionale.utils.coercion import round2, to_count, to_iso_date_or_none, to_number, to_optional_number


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, 0.0),
        ("", 0.0),
        ("12.5", 12.5),
        (" 3 ", 3.0),
        ("abc", 0.0),
        (float("nan"), 0.0),
        (float("inf"), 0.0),
        ("NaN", 0.0),
        (Decimal("1.10"), 1.1),
        (7, 7.0),
    ],
)
def test_to_number(value, expected):
    assert to_number(value) == expected


def test_rounding_and_counts():
    assert round2("3.14159") == 3.14
    assert round2(None) == 0.0
    assert to_count("4") == 4
    assert to_count(None) == 0
    assert to_optional_number(None) is None
    assert to_optional_number("22") == 22.0


def test_to_iso_date_or_none():
    assert to_iso_date_or_none("2025-03-01T10:00:00") == "2025-03-01"
    assert to_iso_date_or_none(datetime(2025, 3, 1, 23, 59)) == "2025-03-01"
    assert to_iso_date_or_none(date(2024, 12, 31)) == "2024-12-31"
    assert to_iso_date_or_none("not a date") is None
    assert to_iso_date_or_none("") is None
    assert to_iso_date_or_none(None) is None


def test_ttl_cache_expires_entries():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set(("owner", 1), {"items": []})

    clock.now += 59
    assert cache.get(("owner", 1)) == {"items": []}

    clock.now += 1
    assert cache.get(("owner", 1)) is None
    assert len(cache) == 0


def test_ttl_cache_sweeps_expired_keys_on_set():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set(("owner", 1, "2025-01"), {"items": []})
    cache.set(("owner", 1, "2025-02"), {"items": []})

    clock.now += 61
    cache.set(("owner", 1, "2025-03"), {"items": ["Birra"]})

    assert len(cache) == 1
    assert cache.get(("owner", 1, "2025-03")) == {"items": ["Birra"]}


def test_ttl_cache_requires_positive_ttl():
    with pytest.raises(ValueError):
        TTLCache(0)


def test_cancellation_registry():
    registry = CancellationRegistry()
    token = registry.register("job-1")

    assert registry.register("job-1") is token
    assert not token.is_cancelled()
    assert registry.cancel("job-1")
    assert token.is_cancelled()

    registry.unregister("job-1")
    assert registry.get("job-1") is None
    assert not registry.cancel("job-1")
