"""
Query composition for property listings.

QueryComposer turns a FilterSet into a FetchSpec: a conjunction of typed
predicates, a total sort order ending in an id tie-break, an optional keyset
bound and an over-fetch-by-one row limit. Stores compile a FetchSpec into their
own query language; nothing here builds query text.
"""

import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple, Union

import structlog

from catalog.filters import BoundingBox, FilterSet, NearPoint, SortMode
from catalog.records import PropertyStatus

logger = structlog.get_logger(__name__)


class ChildCollection(str, Enum):
    """Child tables that can be filtered on."""
    AMENITIES = "amenities"
    ACCESSIBILITY = "accessibility"
    BED_TYPES = "bed_types"


@dataclass(frozen=True)
class StatusIs:
    status: PropertyStatus


@dataclass(frozen=True)
class FieldEquals:
    field: str
    value: Any


@dataclass(frozen=True)
class FieldAtLeast:
    field: str
    value: Any


@dataclass(frozen=True)
class WithinEnvelope:
    bbox: BoundingBox


@dataclass(frozen=True)
class WithinRadius:
    point: NearPoint


@dataclass(frozen=True)
class HasAll:
    """Record has every listed value in the child collection."""
    collection: ChildCollection
    values: Tuple[str, ...]


@dataclass(frozen=True)
class HasAny:
    """Record has at least one listed value in the child collection."""
    collection: ChildCollection
    values: Tuple[str, ...]


Predicate = Union[StatusIs, FieldEquals, FieldAtLeast, WithinEnvelope, WithinRadius, HasAll, HasAny]


class SortField(str, Enum):
    """Sortable expressions. Stores map each to a concrete expression."""
    ID = "id"
    CREATED_AT = "created_at"
    RATING = "rating"  # rating_average with nulls ordered last when descending
    DISTANCE = "distance"
    RANDOM = "random"  # md5(id || seed)


@dataclass(frozen=True)
class SortKey:
    field: SortField
    descending: bool = False


@dataclass(frozen=True)
class SortSpec:
    """A total order over records; the last key is always the id."""

    mode: SortMode
    keys: Tuple[SortKey, ...]
    origin: Optional[NearPoint] = None
    seed: Optional[int] = None


@dataclass(frozen=True)
class KeysetAfter:
    """Keep rows strictly after the anchor record under the sort order."""
    anchor_id: str


@dataclass(frozen=True)
class FetchSpec:
    """Everything a store needs to run one listing query."""

    predicates: Tuple[Predicate, ...]
    sort: SortSpec
    limit: int
    after: Optional[KeysetAfter] = None
    filters: Optional[FilterSet] = field(default=None, compare=False)


DEFAULT_KEYS = (SortKey(SortField.CREATED_AT, descending=True), SortKey(SortField.ID))


class QueryComposer:
    """Builds FetchSpecs from FilterSets."""

    def compose(self, filters: FilterSet) -> FetchSpec:
        """
        Compose the fetch specification for a listing request.

        Args:
            filters: Normalized filters

        Returns:
            FetchSpec asking for limit + 1 rows
        """
        spec = FetchSpec(
            predicates=self.build_predicates(filters),
            sort=self.build_sort(filters),
            limit=filters.limit + 1,
            after=KeysetAfter(filters.cursor.property_id) if filters.cursor else None,
            filters=filters,
        )
        logger.debug(
            "Composed catalog query",
            predicates=len(spec.predicates),
            sort=spec.sort.mode.value,
            keyset=spec.after is not None,
            limit=spec.limit,
        )
        return spec

    def build_predicates(self, filters: FilterSet) -> Tuple[Predicate, ...]:
        """AND-conjunction of one predicate per defined filter, plus status."""
        predicates = [StatusIs(PropertyStatus.ACTIVE)]

        if filters.region_id is not None:
            predicates.append(FieldEquals("region_id", filters.region_id))
        if filters.guests is not None:
            predicates.append(FieldAtLeast("max_occupancy", filters.guests))
        if filters.pets_allowed is not None:
            predicates.append(FieldEquals("pets_allowed", filters.pets_allowed))
        if filters.max_pets is not None:
            predicates.append(FieldAtLeast("max_pets", filters.max_pets))
        if filters.instant_book is not None:
            predicates.append(FieldEquals("instant_book", filters.instant_book))
        if filters.cancellation_tier is not None:
            predicates.append(FieldEquals("cancellation_tier", filters.cancellation_tier.value))

        # bbox and near are independent; supplying both applies both
        if filters.bbox is not None:
            predicates.append(WithinEnvelope(filters.bbox))
        if filters.near is not None:
            predicates.append(WithinRadius(filters.near))

        if filters.amenities:
            predicates.append(HasAll(ChildCollection.AMENITIES, filters.amenities))
        if filters.accessibility:
            predicates.append(HasAll(ChildCollection.ACCESSIBILITY, filters.accessibility))
        if filters.bed_types:
            predicates.append(HasAny(ChildCollection.BED_TYPES, filters.bed_types))

        return tuple(predicates)

    def build_sort(self, filters: FilterSet) -> SortSpec:
        """Select sort keys for the requested mode."""
        mode = filters.sort

        if mode == SortMode.PRICE_ASC:
            # no price is modelled on the listing; id order stands in
            keys = (SortKey(SortField.ID),)
        elif mode == SortMode.PRICE_DESC:
            keys = (SortKey(SortField.ID, descending=True),)
        elif mode == SortMode.RATING_DESC:
            keys = (SortKey(SortField.RATING, descending=True), SortKey(SortField.ID))
        elif mode == SortMode.DISTANCE_ASC and filters.near is not None:
            return SortSpec(
                mode=mode,
                keys=(SortKey(SortField.DISTANCE), SortKey(SortField.ID)),
                origin=filters.near,
            )
        elif mode == SortMode.RANDOM:
            return SortSpec(
                mode=mode,
                keys=(SortKey(SortField.RANDOM), SortKey(SortField.ID)),
                seed=filters.seed if filters.seed is not None else secrets.randbelow(2 ** 31),
            )
        else:
            # default, and distance_asc without a near point
            keys = DEFAULT_KEYS
            mode = SortMode.DEFAULT

        return SortSpec(mode=mode, keys=keys)
