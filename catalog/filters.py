"""
Filter normalization for property catalog queries.

Turns the raw, all-optional query parameters of a listing request into an
immutable FilterSet. Malformed geometry strings and undecodable cursors are
caller errors; an unknown sort mode is not, it falls back to the default
ordering.
"""

import base64
import binascii
import math
import re
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from catalog.exceptions import FilterValidationError, InvalidCursorError
from catalog.records import CancellationTier

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 200
DEFAULT_MASK_PRECISION = 2

_SEEDED_CURSOR = re.compile(r"^(-?\d+):(.+)$", re.DOTALL)


class SortMode(str, Enum):
    """Supported listing orders."""
    DEFAULT = "default"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    RATING_DESC = "rating_desc"
    DISTANCE_ASC = "distance_asc"
    RANDOM = "random"


@dataclass(frozen=True)
class BoundingBox:
    """Envelope given as minLon,minLat,maxLon,maxLat."""

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    def contains(self, lat: float, lon: float) -> bool:
        """Strict interior test, matching ST_Within for points on the edge."""
        return self.min_lon < lon < self.max_lon and self.min_lat < lat < self.max_lat


@dataclass(frozen=True)
class NearPoint:
    """Proximity filter: a point and a radius in meters."""

    lat: float
    lon: float
    radius_m: float


@dataclass(frozen=True)
class CursorToken:
    """Decoded pagination cursor."""

    property_id: str
    seed: Optional[int] = None


class PropertyQueryParams(BaseModel):
    """Raw query parameters for property listing."""
    region_id: Optional[str] = Field(None, description="Filter by region")
    bbox: Optional[str] = Field(None, description="minLon,minLat,maxLon,maxLat")
    near: Optional[str] = Field(None, description="lat,lon,radiusMeters")
    amenities: Optional[str] = Field(None, description="Comma-separated amenities, all required")
    accessibility: Optional[str] = Field(None, description="Comma-separated accessibility features, all required")
    bed_types: Optional[str] = Field(None, description="Comma-separated bed types, any matches")
    pets_allowed: Optional[bool] = Field(None, description="Filter by pet policy")
    max_pets: Optional[int] = Field(None, ge=0, description="Minimum number of pets accepted")
    guests: Optional[int] = Field(None, ge=1, description="Party size to accommodate")
    instant_book: Optional[bool] = Field(None, description="Filter by instant booking")
    cancellation_tier: Optional[CancellationTier] = Field(None, description="Cancellation tier")
    sort: Optional[str] = Field(None, description="Sort mode")
    seed: Optional[int] = Field(None, description="Seed for random sort")
    limit: Optional[int] = Field(None, description="Page size")
    cursor: Optional[str] = Field(None, description="Pagination cursor")
    address_masking: bool = Field(False, description="Return masked address and coordinates")
    mask_precision: int = Field(
        DEFAULT_MASK_PRECISION, ge=0, le=5, description="Decimal digits kept when masking"
    )


class FilterSet(BaseModel):
    """Normalized, typed filters for one listing request."""

    model_config = ConfigDict(frozen=True)

    region_id: Optional[str] = None
    bbox: Optional[BoundingBox] = None
    near: Optional[NearPoint] = None
    guests: Optional[int] = None
    pets_allowed: Optional[bool] = None
    max_pets: Optional[int] = None
    instant_book: Optional[bool] = None
    cancellation_tier: Optional[CancellationTier] = None
    amenities: Tuple[str, ...] = ()
    accessibility: Tuple[str, ...] = ()
    bed_types: Tuple[str, ...] = ()
    sort: SortMode = SortMode.DEFAULT
    seed: Optional[int] = None
    cursor: Optional[CursorToken] = None
    limit: int = DEFAULT_LIMIT
    address_masking: bool = False
    mask_precision: int = DEFAULT_MASK_PRECISION


def encode_cursor(property_id: str, seed: Optional[int] = None) -> str:
    """
    Encode the last-seen property id as an opaque cursor.

    Random ordering carries its seed in the payload so the next page is
    ordered with the same permutation.
    """
    payload = property_id if seed is None else f"{seed}:{property_id}"
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(token: str, sort: SortMode = SortMode.DEFAULT) -> CursorToken:
    """
    Decode a cursor produced by encode_cursor.

    Args:
        token: Base64 cursor from the request
        sort: Sort mode of the request; only random sort reads a seed prefix

    Returns:
        CursorToken with the anchor id and, for random sort, the seed

    Raises:
        InvalidCursorError: If the token is not base64 encoded UTF-8
    """
    # query strings may turn '+' into spaces
    token = token.replace(" ", "+").strip()
    try:
        payload = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise InvalidCursorError("Cursor is not a valid pagination token")

    if not payload:
        raise InvalidCursorError("Cursor is empty")

    if sort == SortMode.RANDOM:
        match = _SEEDED_CURSOR.match(payload)
        if match:
            return CursorToken(property_id=match.group(2), seed=int(match.group(1)))

    return CursorToken(property_id=payload)


def _parse_floats(raw: str, name: str, arity: int) -> List[float]:
    parts = [part.strip() for part in raw.split(",")]
    if len(parts) != arity:
        raise FilterValidationError(f"{name} must contain exactly {arity} comma-separated numbers")
    try:
        values = [float(part) for part in parts]
    except ValueError:
        raise FilterValidationError(f"{name} must contain only numbers")
    if not all(math.isfinite(v) for v in values):
        raise FilterValidationError(f"{name} must contain only finite numbers")
    return values


def _check_point(lat: float, lon: float, name: str) -> None:
    if not -90.0 <= lat <= 90.0:
        raise FilterValidationError(f"{name} latitude must be between -90 and 90")
    if not -180.0 <= lon <= 180.0:
        raise FilterValidationError(f"{name} longitude must be between -180 and 180")


def parse_bbox(raw: str) -> BoundingBox:
    """Parse minLon,minLat,maxLon,maxLat."""
    min_lon, min_lat, max_lon, max_lat = _parse_floats(raw, "bbox", 4)
    _check_point(min_lat, min_lon, "bbox")
    _check_point(max_lat, max_lon, "bbox")
    if min_lon > max_lon or min_lat > max_lat:
        raise FilterValidationError("bbox minimum corner must not exceed maximum corner")
    return BoundingBox(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)


def parse_near(raw: str) -> NearPoint:
    """Parse lat,lon,radiusMeters."""
    lat, lon, radius = _parse_floats(raw, "near", 3)
    _check_point(lat, lon, "near")
    if radius <= 0:
        raise FilterValidationError("near radius must be greater than zero")
    return NearPoint(lat=lat, lon=lon, radius_m=radius)


def parse_list(raw: Optional[str]) -> Tuple[str, ...]:
    """Split a comma list, dropping blanks and repeats."""
    if not raw:
        return ()
    seen = []
    for item in raw.split(","):
        item = item.strip()
        if item and item not in seen:
            seen.append(item)
    return tuple(seen)


def parse_sort(raw: Optional[str]) -> SortMode:
    """
    Map the sort parameter to a SortMode.

    Absent, "relevance" and unrecognised values all select the default
    ordering; this never raises.
    """
    if not raw:
        return SortMode.DEFAULT
    try:
        mode = SortMode(raw.strip().lower())
    except ValueError:
        logger.debug("Unknown sort mode, using default ordering", sort=raw)
        return SortMode.DEFAULT
    return mode


class FilterNormalizer:
    """Builds FilterSets from raw query parameters."""

    def __init__(self, default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT):
        self.default_limit = default_limit
        self.max_limit = max_limit

    def build_params(self, **raw) -> PropertyQueryParams:
        """
        Validate raw parameter types and ranges.

        Raises:
            FilterValidationError: If any parameter fails validation
        """
        try:
            return PropertyQueryParams(**raw)
        except ValidationError as e:
            errors = [
                f"query.{'.'.join(str(loc) for loc in err['loc'])} {err['msg']}"
                for err in e.errors()
            ]
            raise FilterValidationError("Request validation failed", errors=errors)

    def normalize(self, params: PropertyQueryParams) -> FilterSet:
        """
        Normalize validated parameters into a FilterSet.

        Args:
            params: Raw query parameters

        Returns:
            Immutable FilterSet for the request

        Raises:
            FilterValidationError: On malformed bbox/near or out-of-range limit
            InvalidCursorError: On an undecodable cursor
        """
        limit = self.default_limit if params.limit is None else params.limit
        if not 1 <= limit <= self.max_limit:
            raise FilterValidationError(f"limit must be between 1 and {self.max_limit}")

        sort = parse_sort(params.sort)
        cursor = decode_cursor(params.cursor, sort) if params.cursor else None

        seed = None
        if sort == SortMode.RANDOM:
            if cursor is not None and cursor.seed is not None:
                seed = cursor.seed
            elif params.seed is not None:
                seed = params.seed
            else:
                seed = secrets.randbelow(2 ** 31)

        return FilterSet(
            region_id=params.region_id or None,
            bbox=parse_bbox(params.bbox) if params.bbox else None,
            near=parse_near(params.near) if params.near else None,
            guests=params.guests,
            pets_allowed=params.pets_allowed,
            max_pets=params.max_pets,
            instant_book=params.instant_book,
            cancellation_tier=params.cancellation_tier,
            amenities=parse_list(params.amenities),
            accessibility=parse_list(params.accessibility),
            bed_types=parse_list(params.bed_types),
            sort=sort,
            seed=seed,
            cursor=cursor,
            limit=limit,
            address_masking=params.address_masking,
            mask_precision=params.mask_precision,
        )
