"""
API v1 routers.
"""

from src.api.v1 import health, map_fields, odata, preview

__all__ = ["health", "map_fields", "odata", "preview"]
