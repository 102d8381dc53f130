"""
Repository implementations for data access.
"""

from src.repositories.preview_repo import InMemoryPreviewRepository

__all__ = [
    "InMemoryPreviewRepository",
]
