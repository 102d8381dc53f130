"""
Preview endpoints: creation and the rendered preview document.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from src.api.deps import get_preview_service, get_settings
from src.core.config import Settings
from src.core.logging import get_logger
from src.services.preview_html import build_preview_html
from src.services.preview_payload import CreatePreviewRequest
from src.services.preview_service import PreviewService

logger = get_logger(__name__)

router = APIRouter()

PREVIEW_NOT_FOUND_MESSAGE = "Preview not found or expired"


@router.post("/preview")
async def create_preview(
    request: CreatePreviewRequest,
    preview_service: PreviewService = Depends(get_preview_service),
) -> dict[str, Any]:
    """
    Create a preview from fields, mock rows or explicit view markup.

    Returns the preview ID, a shareable URL carrying the signed token, the
    token itself and the creation time.
    """
    created = await preview_service.create_preview(request)
    return created.model_dump(by_alias=True)


@router.get("/preview/{preview_id}")
async def get_preview_document(
    preview_id: str,
    token: Optional[str] = Query(default=None),
    preview_service: PreviewService = Depends(get_preview_service),
    app_settings: Settings = Depends(get_settings),
) -> Response:
    """
    Serve the HTML document that renders a preview.
    """
    preview = await preview_service.resolve_preview(preview_id, token)
    if preview is None:
        logger.info("Preview document not found", preview_id=preview_id, has_token=bool(token))
        return PlainTextResponse(PREVIEW_NOT_FOUND_MESSAGE, status_code=404)

    document = build_preview_html(
        preview_id,
        preview,
        ui5_bootstrap_url=app_settings.preview.ui5_bootstrap_url,
        runtime_script_url=app_settings.preview.runtime_script_url,
    )
    return HTMLResponse(
        document,
        headers={
            "Cache-Control": "no-store",
            "X-Content-Type-Options": "nosniff",
        },
    )
