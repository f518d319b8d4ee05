"""
FastAPI RESTful API for the OpenStays property catalog.

This module provides the HTTP surface for:
- Property listing with filters, sorting and cursor pagination
- Single property lookup with optional address masking
- API key and OAuth bearer authentication
- Per-caller rate limiting backed by Redis
"""
