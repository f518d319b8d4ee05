"""
Distributed fixed-window rate limiting over Redis.

This package provides:
- Caller identity resolution (API key > OAuth client > source address)
- An atomic increment-with-expiry counter store
- Admission decisions with remaining quota and retry hints
"""
