"""
Tests for SQL compilation in the PostgreSQL property store.

Statements are compiled against the PostgreSQL dialect; no database is needed.
"""

import pytest
from sqlalchemy.dialects import postgresql

from catalog.database import create_engine
from catalog.filters import BoundingBox, CursorToken, FilterSet, NearPoint, SortMode
from catalog.query import (
    ChildCollection, HasAll, HasAny, QueryComposer, StatusIs, WithinEnvelope,
    WithinRadius,
)
from catalog.records import PropertyStatus
from catalog.store import PostgresPropertyStore, compile_predicate


def _sql(clause) -> str:
    return str(clause.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))


@pytest.fixture
def store():
    engine = create_engine("postgresql+asyncpg://catalog@localhost:5432/catalog_test", pool_size=1)
    return PostgresPropertyStore(engine)


class TestCompilePredicate:
    """Test cases for predicate compilation."""

    def test_status(self):
        assert "properties.status = 'active'" in _sql(compile_predicate(StatusIs(PropertyStatus.ACTIVE)))

    def test_envelope_uses_st_within(self):
        sql = _sql(compile_predicate(WithinEnvelope(BoundingBox(174.0, -37.0, 175.0, -36.0))))
        assert "ST_Within" in sql
        assert "ST_MakeEnvelope(174.0, -37.0, 175.0, -36.0, 4326)" in sql

    def test_radius_uses_st_dwithin(self):
        sql = _sql(compile_predicate(WithinRadius(NearPoint(-36.85, 174.76, 5000.0))))
        assert "ST_DWithin" in sql
        assert "ST_MakePoint(174.76, -36.85)" in sql

    def test_has_all_is_one_exists_per_value(self):
        sql = _sql(compile_predicate(HasAll(ChildCollection.AMENITIES, ("wifi", "pool"))))
        assert sql.count("EXISTS") == 2
        assert "property_amenities" in sql

    def test_has_any_is_a_single_exists(self):
        sql = _sql(compile_predicate(HasAny(ChildCollection.BED_TYPES, ("queen", "king"))))
        assert sql.count("EXISTS") == 1
        assert "IN ('queen', 'king')" in sql


class TestBuildStatement:
    """Test cases for full listing statements."""

    def test_default_order_and_limit(self, store):
        spec = QueryComposer().compose(FilterSet(limit=20))
        sql = _sql(store.build_statement(spec))

        assert "ORDER BY properties.created_at DESC, properties.id ASC" in sql
        assert "LIMIT 21" in sql

    def test_rating_sort_coalesces_nulls(self, store):
        spec = QueryComposer().compose(FilterSet(sort=SortMode.RATING_DESC))
        sql = _sql(store.build_statement(spec))
        assert "coalesce(properties.rating_average, -1) DESC" in sql

    def test_random_sort_uses_seeded_md5(self, store):
        spec = QueryComposer().compose(FilterSet(sort=SortMode.RANDOM, seed=42))
        sql = _sql(store.build_statement(spec))
        assert "md5(concat(properties.id, '42'))" in sql

    def test_distance_sort(self, store):
        near = NearPoint(-36.85, 174.76, 5000.0)
        spec = QueryComposer().compose(FilterSet(sort=SortMode.DISTANCE_ASC, near=near))
        sql = _sql(store.build_statement(spec))
        assert "ORDER BY ST_Distance" in sql

    def test_keyset_reads_anchor_values(self, store):
        spec = QueryComposer().compose(
            FilterSet(sort=SortMode.RATING_DESC, cursor=CursorToken("p03"))
        )
        sql = _sql(store.build_statement(spec))

        assert "properties_1.id = 'p03'" in sql
        assert " OR " in sql
