"""
System-wide constants for the report preview service.
"""

from enum import Enum


# =============================================================================
# Enums
# =============================================================================


class FieldType(str, Enum):
    """Data types a mapped field can carry."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    ENUM = "enum"


class MappingSource(str, Enum):
    """Where a field mapping came from."""

    EXTERNAL = "external"
    MOCK = "mock"
    MOCK_FALLBACK = "mock-fallback"


class SortDirection(str, Enum):
    """Sort directions accepted by the declarative controller."""

    ASC = "asc"
    DESC = "desc"


# =============================================================================
# API Constants
# =============================================================================

API_VERSION = "v1"
API_PREFIX = f"/api/{API_VERSION}"

# =============================================================================
# Preview Constants
# =============================================================================

PREVIEW_TTL_SECONDS = 60 * 60
CONTROLLER_CONFIG_VERSION = 1
MAX_INITIAL_FILTERS = 20

DEFAULT_PREVIEW_NAME = "Generated Report Preview"
DEFAULT_CDS_VIEW = "I_AdhocPreview"
PLACEHOLDER_ROW_COUNT = 8

# Keys injected into preview model data for the rendering runtime
PREVIEW_COLUMNS_KEY = "__previewColumns"
PREVIEW_FILTERS_KEY = "__previewFilters"
SMART_TABLE_ODATA_KEY = "__smartTableOData"

# =============================================================================
# Token Constants
# =============================================================================

TOKEN_VERSION_LEGACY = 1  # free-form controllerJs script
TOKEN_VERSION_CURRENT = 2  # declarative controller config

# =============================================================================
# OData Constants
# =============================================================================

ODATA_NAMESPACE = "PreviewService"
ODATA_ENTITY_SET = "PreviewSet"
ODATA_ENTITY_TYPE = "PreviewType"
ODATA_ENTITY_TYPE_FQN = f"{ODATA_NAMESPACE}.{ODATA_ENTITY_TYPE}"
ODATA_ROW_ID = "__row_id"
ODATA_DECIMAL_PRECISION = 16
ODATA_DECIMAL_SCALE = 3

ODATA_HEADERS = {
    "Cache-Control": "no-store",
    "DataServiceVersion": "2.0",
    "OData-Version": "2.0",
}

# =============================================================================
# Field Mapping Constants
# =============================================================================

MOCK_CDS_VIEW = "I_AutoMapped"
MAX_DISPLAY_NAME_LENGTH = 70
MAX_MOCK_FIELDS = 12

# Display names containing these phrases are command text, not fields
PROMPT_NOISE_PHRASES = (
    "create report",
    "create a report",
    "generate report",
    "generate a report",
    "show me",
    "i need a report",
    "please create a report",
)
