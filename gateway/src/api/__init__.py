"""
HTTP surface of the Axpert gateway.

Exports the FastAPI application factory.

CHANGELOG:
- 2026-03-07: Initial creation (STORY-010)

TODO:
- None
"""

from gateway.src.api.main import create_app

__all__ = ["create_app"]
