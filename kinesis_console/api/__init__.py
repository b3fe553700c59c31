"""
HTTP API for Kinesis Console.

Invariants:
    - Routes live under /api and keep the field names the frontend uses
    - Invalid input maps to 400, upstream failures to 502

How to change safely:
    - Add new endpoints, don't rename existing fields
"""

from .app import create_app
from .routes import router

__all__ = ["create_app", "router"]
