"""
Property stores.

PropertyStore is the interface the catalog service fetches through.
PostgresPropertyStore compiles FetchSpecs into SQLAlchemy Core expressions
over the PostGIS schema: one parent query bounded to limit + 1 rows, then one
query per child table restricted to the page's ids, grouped per parent.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import structlog
from geoalchemy2 import Geography, Geometry
from sqlalchemy import and_, cast, func, literal, or_, select, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import aliased
from sqlalchemy.sql.elements import ColumnElement

from catalog.database import create_session_factory
from catalog.models import (
    Property, PropertyAccessibility, PropertyAmenity, PropertyBedConfig,
    PropertyPhoto, PropertyTag,
)
from catalog.query import (
    ChildCollection, FetchSpec, FieldAtLeast, FieldEquals, HasAll, HasAny,
    KeysetAfter, Predicate, SortField, SortSpec, StatusIs, WithinEnvelope,
    WithinRadius,
)
from catalog.records import (
    BedConfigRecord, PhotoRecord, PropertyRecord, PropertyStatus,
    distinct_sorted, group_by_parent,
)

logger = structlog.get_logger(__name__)


class PropertyStore(ABC):
    """Read interface over the property catalog."""

    @abstractmethod
    async def fetch(self, spec: FetchSpec) -> List[PropertyRecord]:
        """Run a listing query; returns at most spec.limit rows, sorted."""

    @abstractmethod
    async def get(self, property_id: str) -> Optional[PropertyRecord]:
        """Return one active property, or None."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store is reachable."""


POINT_GEOMETRY = Geometry(geometry_type="POINT", srid=4326)
POINT_GEOGRAPHY = Geography(geometry_type="POINT", srid=4326)

_FIELDS = {
    "region_id": Property.region_id,
    "max_occupancy": Property.max_occupancy,
    "pets_allowed": Property.pets_allowed,
    "max_pets": Property.max_pets,
    "instant_book": Property.instant_book,
    "cancellation_tier": Property.cancellation_tier,
}

_CHILD_COLUMNS = {
    ChildCollection.AMENITIES: (PropertyAmenity.property_id, PropertyAmenity.amenity),
    ChildCollection.ACCESSIBILITY: (PropertyAccessibility.property_id, PropertyAccessibility.feature),
    ChildCollection.BED_TYPES: (PropertyBedConfig.property_id, PropertyBedConfig.bed_type),
}


def _geo_point(lat: float, lon: float) -> ColumnElement:
    return cast(func.ST_SetSRID(func.ST_MakePoint(lon, lat), 4326), POINT_GEOGRAPHY)


def compile_predicate(predicate: Predicate) -> ColumnElement:
    """Compile one typed predicate into a SQL boolean expression."""
    if isinstance(predicate, StatusIs):
        return Property.status == predicate.status.value
    if isinstance(predicate, FieldEquals):
        return _FIELDS[predicate.field] == predicate.value
    if isinstance(predicate, FieldAtLeast):
        return _FIELDS[predicate.field] >= predicate.value
    if isinstance(predicate, WithinEnvelope):
        bbox = predicate.bbox
        return func.ST_Within(
            cast(Property.coordinates, POINT_GEOMETRY),
            func.ST_MakeEnvelope(bbox.min_lon, bbox.min_lat, bbox.max_lon, bbox.max_lat, 4326),
        )
    if isinstance(predicate, WithinRadius):
        point = predicate.point
        return func.ST_DWithin(Property.coordinates, _geo_point(point.lat, point.lon), point.radius_m)
    if isinstance(predicate, HasAll):
        parent, column = _CHILD_COLUMNS[predicate.collection]
        return and_(*[
            select(literal(1)).where(parent == Property.id, column == value).exists()
            for value in predicate.values
        ])
    if isinstance(predicate, HasAny):
        parent, column = _CHILD_COLUMNS[predicate.collection]
        return select(literal(1)).where(parent == Property.id, column.in_(predicate.values)).exists()
    raise TypeError(f"Unsupported predicate: {predicate!r}")


def sort_expression(field: SortField, sort: SortSpec, entity=Property) -> ColumnElement:
    """SQL expression for one sort key, over Property or an alias of it."""
    if field == SortField.ID:
        return entity.id
    if field == SortField.CREATED_AT:
        return entity.created_at
    if field == SortField.RATING:
        # ratings are non-negative, so -1 puts unrated listings last
        return func.coalesce(entity.rating_average, -1)
    if field == SortField.DISTANCE:
        return func.ST_Distance(entity.coordinates, _geo_point(sort.origin.lat, sort.origin.lon))
    if field == SortField.RANDOM:
        return func.md5(func.concat(entity.id, str(sort.seed)))
    raise ValueError(f"Unsupported sort field: {field}")


def order_by_clauses(sort: SortSpec) -> List[ColumnElement]:
    clauses = []
    for key in sort.keys:
        expr = sort_expression(key.field, sort)
        clauses.append(expr.desc() if key.descending else expr.asc())
    return clauses


def keyset_condition(after: KeysetAfter, sort: SortSpec) -> ColumnElement:
    """
    Rows strictly after the anchor under the full sort order.

    The anchor's sort values are read by scalar sub-selects, so the bound is
    part of the single listing query. A missing anchor makes every
    comparison NULL and the page empty.
    """
    anchor = aliased(Property)
    row_values = []
    anchor_values = []
    for key in sort.keys:
        row_values.append(sort_expression(key.field, sort))
        anchor_values.append(
            select(sort_expression(key.field, sort, anchor))
            .where(anchor.id == after.anchor_id)
            .scalar_subquery()
        )

    branches = []
    for i, key in enumerate(sort.keys):
        equal_prefix = [row_values[j] == anchor_values[j] for j in range(i)]
        if key.descending:
            beyond = row_values[i] < anchor_values[i]
        else:
            beyond = row_values[i] > anchor_values[i]
        branches.append(and_(*equal_prefix, beyond))
    return or_(*branches)


class PostgresPropertyStore(PropertyStore):
    """PropertyStore backed by PostgreSQL with PostGIS."""

    def __init__(self, engine: AsyncEngine):
        """
        Initialize the store.

        Args:
            engine: Shared pooled engine
        """
        self.engine = engine
        self.session_factory = create_session_factory(engine)

    def _base_query(self):
        geometry = cast(Property.coordinates, POINT_GEOMETRY)
        return select(
            Property,
            func.ST_Y(geometry).label("lat"),
            func.ST_X(geometry).label("lon"),
        )

    def build_statement(self, spec: FetchSpec):
        """Compile a FetchSpec into a bounded, ordered select."""
        conditions = [compile_predicate(p) for p in spec.predicates]
        if spec.after is not None:
            conditions.append(keyset_condition(spec.after, spec.sort))
        return (
            self._base_query()
            .where(*conditions)
            .order_by(*order_by_clauses(spec.sort))
            .limit(spec.limit)
        )

    async def fetch(self, spec: FetchSpec) -> List[PropertyRecord]:
        """
        Run a listing query.

        Args:
            spec: Composed fetch specification

        Returns:
            Up to spec.limit records in sort order, children attached
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(self.build_statement(spec))
                records = [to_record(prop, lat, lon) for prop, lat, lon in result.all()]
                await self._attach_children(session, records)
                return records
        except Exception as e:
            logger.error("Failed to fetch properties", error=str(e), sort=spec.sort.mode.value)
            raise

    async def get(self, property_id: str) -> Optional[PropertyRecord]:
        """
        Get a single active property.

        Args:
            property_id: Property identifier

        Returns:
            PropertyRecord if found and active, None otherwise
        """
        stmt = self._base_query().where(
            Property.id == property_id,
            Property.status == PropertyStatus.ACTIVE.value,
        ).limit(1)
        try:
            async with self.session_factory() as session:
                row = (await session.execute(stmt)).first()
                if row is None:
                    return None
                record = to_record(*row)
                await self._attach_children(session, [record])
                return record
        except Exception as e:
            logger.error("Failed to get property", property_id=property_id, error=str(e))
            raise

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database ping failed", error=str(e))
            return False

    async def _attach_children(self, session: AsyncSession, records: Sequence[PropertyRecord]) -> None:
        """Load every child collection for the page and group it per parent."""
        if not records:
            return
        ids = [r.id for r in records]

        photos = await session.execute(
            select(PropertyPhoto)
            .where(PropertyPhoto.property_id.in_(ids))
            .order_by(PropertyPhoto.display_order.asc().nulls_last(), PropertyPhoto.url)
        )
        photos_by_parent = group_by_parent(
            photos.scalars(),
            lambda p: p.property_id,
            lambda p: PhotoRecord(
                url=p.url, caption=p.caption, width=p.width, height=p.height, order=p.display_order
            ),
        )

        beds = await session.execute(
            select(PropertyBedConfig)
            .where(PropertyBedConfig.property_id.in_(ids))
            .order_by(PropertyBedConfig.id)
        )
        beds_by_parent = group_by_parent(
            beds.scalars(),
            lambda b: b.property_id,
            lambda b: BedConfigRecord(room_label=b.room_label, bed_type=b.bed_type, bed_count=b.bed_count),
        )

        amenities = await self._child_values(session, PropertyAmenity.property_id, PropertyAmenity.amenity, ids)
        accessibility = await self._child_values(
            session, PropertyAccessibility.property_id, PropertyAccessibility.feature, ids
        )
        tags = await self._child_values(session, PropertyTag.property_id, PropertyTag.tag, ids)

        for record in records:
            record.photos = photos_by_parent.get(record.id, [])
            record.bed_configs = beds_by_parent.get(record.id, [])
            record.amenities = distinct_sorted(amenities.get(record.id, []))
            record.accessibility = distinct_sorted(accessibility.get(record.id, []))
            record.tags = distinct_sorted(tags.get(record.id, []))

    async def _child_values(self, session: AsyncSession, parent, column, ids: List[str]) -> Dict[str, List[str]]:
        result = await session.execute(select(parent, column).where(parent.in_(ids)))
        return group_by_parent(result.all(), lambda row: row[0], lambda row: row[1])


def to_record(prop: Property, lat: float, lon: float) -> PropertyRecord:
    """Copy an ORM row and its extracted coordinates into a PropertyRecord."""
    return PropertyRecord(
        id=prop.id,
        status=PropertyStatus(prop.status),
        title=prop.title,
        summary=prop.summary,
        description=prop.description,
        region_id=prop.region_id,
        property_type=prop.property_type,
        max_occupancy=prop.max_occupancy,
        bedrooms=prop.bedrooms,
        bathrooms=prop.bathrooms,
        lat=lat,
        lon=lon,
        address_line1=prop.address_line1,
        address_line2=prop.address_line2,
        city=prop.city,
        region=prop.region,
        country=prop.country,
        postal_code=prop.postal_code,
        pets_allowed=bool(prop.pets_allowed),
        max_pets=prop.max_pets,
        pet_fee_type=prop.pet_fee_type,
        pet_fee_amount=prop.pet_fee_amount,
        pet_fee_currency=prop.pet_fee_currency,
        instant_book=bool(prop.instant_book),
        min_stay_nights=prop.min_stay_nights,
        max_stay_nights=prop.max_stay_nights,
        buffer_days_before=prop.buffer_days_before,
        buffer_days_after=prop.buffer_days_after,
        cancellation_tier=prop.cancellation_tier,
        cleaning_fee=prop.cleaning_fee,
        cleaning_fee_currency=prop.cleaning_fee_currency,
        security_deposit=prop.security_deposit,
        security_deposit_currency=prop.security_deposit_currency,
        additional_guest_after=prop.additional_guest_after,
        additional_guest_fee=prop.additional_guest_fee,
        additional_guest_fee_currency=prop.additional_guest_fee_currency,
        gst_registered=bool(prop.gst_registered),
        gst_number=prop.gst_number,
        rating_average=prop.rating_average,
        rating_count=prop.rating_count,
        created_at=prop.created_at,
        updated_at=prop.updated_at,
    )
