"""
Kinesis Console Test Suite.

This package contains:
- unit/: Unit tests (in-memory backend and fakes, no AWS access)
"""
