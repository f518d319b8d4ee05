"""
Property catalog query engine.

This package provides:
- Filter normalization from raw query parameters
- Typed predicate and sort composition with keyset pagination
- PostgreSQL/PostGIS property store
- Projection of store records into the public Property shape
"""
