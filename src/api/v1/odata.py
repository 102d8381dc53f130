"""
Mock OData V2 endpoints backing SmartTable previews.

Resolves the preview from the store, then from a token in the path
(``odata/token/<token>/...``), the ``token`` query parameter or the Referer
URL, in that order.
"""

import re
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from src.api.deps import get_preview_service, get_settings
from src.core.config import Settings
from src.core.constants import ODATA_HEADERS
from src.core.exceptions import (
    EntitySetNotFoundError,
    NotFoundError,
    PreviewNotFoundError,
    ReportPreviewError,
)
from src.core.logging import LogContext, get_logger
from src.services.odata_engine import (
    MockODataService,
    ODataQuery,
    is_entity_set_segment,
    parse_entity_key,
)
from src.services.preview_service import PreviewService

logger = get_logger(__name__)

router = APIRouter()

ODATA_ROOT = "/preview/{preview_id}/odata"
ODATA_PATH = "/preview/{preview_id}/odata/{path:path}"

_ENTITY_SET_SUFFIX = re.compile(r"PreviewSet.*$", re.IGNORECASE)


def _odata_json(payload: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(payload, status_code=status_code, headers=ODATA_HEADERS)


def _odata_text(body: str, media_type: str) -> Response:
    return Response(body, media_type=media_type, headers=ODATA_HEADERS)


def split_token_segments(path: str) -> tuple[Optional[str], list[str]]:
    """Separate a leading ``token/<token>`` pair from the resource segments."""
    segments = [segment for segment in path.split("/") if segment]
    if len(segments) >= 2 and segments[0] == "token":
        return segments[1], segments[2:]
    return None, segments


def token_from_referer(referer: Optional[str]) -> Optional[str]:
    if not referer:
        return None
    try:
        query = urlsplit(referer).query
    except ValueError:
        return None
    values = parse_qs(query).get("token")
    return values[0] if values else None


def service_root_url(request: Request) -> str:
    """Request URL up to (and excluding) the entity set segment."""
    url = request.url
    return f"{url.scheme}://{url.netloc}{_ENTITY_SET_SUFFIX.sub('', url.path)}"


async def _serve(
    request: Request,
    preview_id: str,
    path: str,
    preview_service: PreviewService,
    app_settings: Settings,
) -> Response:
    path_token, segments = split_token_segments(path)
    preview = await preview_service.resolve_preview(
        preview_id,
        path_token,
        request.query_params.get("token"),
        token_from_referer(request.headers.get("referer")),
    )
    if preview is None:
        raise PreviewNotFoundError()

    service = MockODataService(preview.model_data, strict_filters=app_settings.preview.strict_filters)
    first_segment = segments[0] if segments else ""

    if not first_segment:
        return _odata_json(service.service_document())

    if first_segment == "$metadata":
        return _odata_text(service.metadata_document(), "application/xml; charset=utf-8")

    query = ODataQuery.from_params(request.query_params)

    entity_key = parse_entity_key(first_segment)
    if entity_key is not None:
        entity = service.entity(entity_key, service_root_url(request), select=query.select)
        if entity is None:
            raise NotFoundError(resource_type="Entity", resource_id=entity_key)
        return _odata_json(entity)

    if not is_entity_set_segment(first_segment):
        raise EntitySetNotFoundError(first_segment)

    if len(segments) > 1 and segments[1].lower() == "$count":
        return _odata_text(str(service.count(query)), "text/plain; charset=utf-8")

    logger.debug(
        "OData query",
        filter=query.filter,
        orderby=query.orderby,
        skip=query.skip,
        top=query.top,
    )
    return _odata_json(service.query(query, service_root_url(request)))


@router.get(ODATA_ROOT)
@router.get(ODATA_PATH)
async def get_odata(
    request: Request,
    preview_id: str,
    path: str = "",
    preview_service: PreviewService = Depends(get_preview_service),
    app_settings: Settings = Depends(get_settings),
) -> Response:
    """
    Serve the mock OData service of a preview.
    """
    with LogContext(preview_id=preview_id):
        try:
            return await _serve(request, preview_id, path, preview_service, app_settings)
        except ReportPreviewError as e:
            logger.info("OData request rejected", code=e.code, path=request.url.path)
            return _odata_json({"error": e.message}, status_code=e.status_code)


@router.head(ODATA_ROOT)
@router.head(ODATA_PATH)
async def head_odata(preview_id: str, path: str = "") -> Response:
    """Availability probe used by some OData clients."""
    return Response(status_code=200, headers=ODATA_HEADERS)


@router.options(ODATA_ROOT)
@router.options(ODATA_PATH)
async def options_odata(preview_id: str, path: str = "") -> Response:
    return Response(
        status_code=204,
        headers={"Allow": "GET,HEAD,OPTIONS", "Cache-Control": "no-store"},
    )
