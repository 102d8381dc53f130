"""
Service layer implementations.
"""

from src.services.field_mapping_service import FieldMappingService, MappingResult
from src.services.odata_engine import MockODataService, ODataQuery
from src.services.preview_service import PreviewCreated, PreviewService
from src.services.preview_token import PreviewTokenCodec

__all__ = [
    "FieldMappingService",
    "MappingResult",
    "MockODataService",
    "ODataQuery",
    "PreviewCreated",
    "PreviewService",
    "PreviewTokenCodec",
]
