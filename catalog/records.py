"""
Store-neutral property records.

Both store backends hand the projector the same PropertyRecord shape, with
child collections already grouped under their parent.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar


class PropertyStatus(str, Enum):
    """Lifecycle status of a property listing."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    DRAFT = "draft"


class CancellationTier(str, Enum):
    """Cancellation policy tiers."""
    FLEXIBLE = "flexible"
    MODERATE = "moderate"
    STRICT = "strict"
    SUPER_STRICT = "super_strict"


@dataclass
class PhotoRecord:
    """A listing photo."""

    url: str
    caption: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    order: Optional[int] = None


@dataclass
class BedConfigRecord:
    """One bed configuration row: a bed type and count within a room."""

    room_label: Optional[str]
    bed_type: str
    bed_count: int


@dataclass
class PropertyRecord:
    """A property row with its child collections attached."""

    id: str
    status: PropertyStatus
    title: str
    region_id: str
    property_type: str
    max_occupancy: int
    lat: float
    lon: float
    created_at: datetime
    updated_at: Optional[datetime] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[Decimal] = None

    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None

    pets_allowed: bool = False
    max_pets: Optional[int] = None
    pet_fee_type: Optional[str] = None
    pet_fee_amount: Optional[Decimal] = None
    pet_fee_currency: Optional[str] = None

    instant_book: bool = False
    min_stay_nights: Optional[int] = None
    max_stay_nights: Optional[int] = None
    buffer_days_before: Optional[int] = None
    buffer_days_after: Optional[int] = None
    cancellation_tier: Optional[str] = None

    cleaning_fee: Optional[Decimal] = None
    cleaning_fee_currency: Optional[str] = None
    security_deposit: Optional[Decimal] = None
    security_deposit_currency: Optional[str] = None
    additional_guest_after: Optional[int] = None
    additional_guest_fee: Optional[Decimal] = None
    additional_guest_fee_currency: Optional[str] = None

    gst_registered: bool = False
    gst_number: Optional[str] = None

    rating_average: Optional[Decimal] = None
    rating_count: Optional[int] = None

    photos: List[PhotoRecord] = field(default_factory=list)
    amenities: List[str] = field(default_factory=list)
    accessibility: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    bed_configs: List[BedConfigRecord] = field(default_factory=list)


T = TypeVar("T")


def group_by_parent(
    rows: Iterable[T],
    parent_key: Callable[[T], str],
    value: Callable[[T], Any] = lambda row: row,
) -> Dict[str, List[Any]]:
    """
    Group child rows under their parent id, keeping row order.

    Args:
        rows: Child rows from a one-to-many table
        parent_key: Returns the parent id of a row
        value: Maps a row to the value stored in the group

    Returns:
        Mapping of parent id to the list of its child values
    """
    grouped: Dict[str, List[Any]] = defaultdict(list)
    for row in rows:
        grouped[parent_key(row)].append(value(row))
    return grouped


def distinct_sorted(values: Iterable[Optional[str]]) -> List[str]:
    """Drop nulls and duplicates from a tag-like collection, sorted."""
    return sorted({v for v in values if v is not None})
