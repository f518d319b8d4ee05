"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import fakeredis
import pytest
from fakeredis import aioredis as fake_aioredis

from catalog.records import BedConfigRecord, PhotoRecord, PropertyRecord, PropertyStatus
from memory_store import InMemoryPropertyStore

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_record(property_id: str, **overrides) -> PropertyRecord:
    values = dict(
        id=property_id,
        status=PropertyStatus.ACTIVE,
        title=f"Listing {property_id}",
        region_id="auckland",
        property_type="house",
        max_occupancy=4,
        lat=-36.84853,
        lon=174.76349,
        created_at=BASE_TIME,
    )
    values.update(overrides)
    return PropertyRecord(**values)


@pytest.fixture
def record_factory():
    """Build a PropertyRecord with sensible defaults."""
    return _make_record


@pytest.fixture
def sample_records():
    """A small catalog with ties, null ratings and one inactive listing."""
    return [
        _make_record(
            "p01",
            lat=-36.5, lon=174.5,
            max_occupancy=6,
            rating_average=Decimal("4.80"), rating_count=20,
            amenities=["kitchen", "wifi"],
            bed_configs=[BedConfigRecord("Master", "queen", 1)],
            pets_allowed=True, max_pets=2,
            instant_book=True,
            cancellation_tier="flexible",
        ),
        _make_record(
            "p02",
            lat=-36.5, lon=176.0,
            region_id="bay-of-plenty",
            max_occupancy=2,
            amenities=["wifi"],
            bed_configs=[BedConfigRecord(None, "single", 2)],
        ),
        _make_record(
            "p03",
            created_at=BASE_TIME - timedelta(days=1),
            lat=-36.85, lon=174.76,
            rating_average=Decimal("4.20"), rating_count=8,
            amenities=["kitchen", "pool", "wifi"],
            accessibility=["step_free_entry"],
            cancellation_tier="strict",
            photos=[PhotoRecord("https://img.example.com/p03/1.jpg", caption="Lounge", order=1)],
        ),
        _make_record(
            "p04",
            created_at=BASE_TIME - timedelta(days=2),
            lat=-36.86, lon=174.77,
            rating_average=Decimal("4.80"), rating_count=3,
            bed_configs=[
                BedConfigRecord("Bedroom 1", "king", 1),
                BedConfigRecord("Bedroom 2", "single", 2),
            ],
        ),
        _make_record(
            "p05",
            status=PropertyStatus.INACTIVE,
            created_at=BASE_TIME + timedelta(days=1),
            lat=-36.84, lon=174.76,
            rating_average=Decimal("5.00"), rating_count=1,
            amenities=["kitchen", "wifi"],
        ),
        _make_record(
            "p06",
            created_at=BASE_TIME - timedelta(days=3),
            lat=-37.0, lon=175.0,
            max_occupancy=8,
            pets_allowed=True, max_pets=1,
        ),
        _make_record(
            "p07",
            created_at=BASE_TIME - timedelta(days=4),
            lat=-36.70, lon=174.60,
            rating_average=Decimal("3.90"), rating_count=12,
            instant_book=True,
        ),
        _make_record(
            "p08",
            created_at=BASE_TIME - timedelta(days=5),
            region_id="wellington",
            lat=-41.29, lon=174.78,
            rating_average=Decimal("4.50"), rating_count=40,
            cancellation_tier="moderate",
        ),
    ]


@pytest.fixture
def memory_store(sample_records):
    """In-memory property store over the sample catalog."""
    return InMemoryPropertyStore(sample_records)


@pytest.fixture
def fake_redis():
    """Isolated fake Redis client."""
    return fake_aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
