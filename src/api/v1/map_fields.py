"""
Field mapping endpoint.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from src.api.deps import get_field_mapping_service, get_settings
from src.core.config import Settings
from src.core.exceptions import InvalidRequestError
from src.core.logging import get_logger
from src.services.field_mapping_service import FieldMappingService

logger = get_logger(__name__)

router = APIRouter()


class MapFieldsRequest(BaseModel):
    """Request to map a report prompt to CDS fields."""

    model_config = ConfigDict(populate_by_name=True)

    prompt: Any = None
    force_mock: Optional[bool] = Field(default=None, alias="forceMock")


@router.post("/map-fields")
async def map_fields(
    request: MapFieldsRequest,
    mapping_service: FieldMappingService = Depends(get_field_mapping_service),
    app_settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """
    Map a natural-language report request to SAP CDS fields.

    Always answers with fields; ``_meta.source`` tells whether they came from
    the LLM or from the heuristic mock.
    """
    prompt = request.prompt.strip() if isinstance(request.prompt, str) else ""
    if not prompt:
        raise InvalidRequestError("Invalid prompt provided", field="prompt")

    force_mock = request.force_mock is True or app_settings.llm.force_mock
    result = await mapping_service.generate(prompt, force_mock=force_mock)

    logger.info(
        "Fields mapped",
        source=result.source.value,
        reason=result.reason,
        fields=len(result.fields),
    )

    return {
        **result.payload,
        "_meta": {"source": result.source.value, "reason": result.reason},
    }
