"""
Preview service for managing the preview lifecycle.
"""

from typing import Any, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field

from src.core.constants import (
    API_PREFIX,
    ODATA_ENTITY_SET,
    PREVIEW_TTL_SECONDS,
    SMART_TABLE_ODATA_KEY,
)
from src.core.logging import get_logger
from src.domain.preview import PreviewPayload
from src.repositories.preview_repo import InMemoryPreviewRepository
from src.services.preview_payload import CreatePreviewRequest, build_preview_payload
from src.services.preview_token import PreviewTokenCodec

logger = get_logger(__name__)


class PreviewCreated(BaseModel):
    """Response of a successful preview creation."""

    model_config = ConfigDict(populate_by_name=True)

    preview_id: str = Field(..., alias="previewId")
    preview_url: str = Field(..., alias="previewUrl")
    preview_token: str = Field(..., alias="previewToken")
    created_at: str = Field(..., alias="createdAt")


def preview_odata_url(preview_id: str) -> str:
    return f"{API_PREFIX}/preview/{preview_id}/odata/"


class PreviewService:
    """
    Service for creating and resolving previews.

    A preview lives in the process-local store and, independently, in a
    self-contained signed token, so it stays reachable after a restart or on
    another instance as long as the token has not expired.
    """

    def __init__(
        self,
        repository: InMemoryPreviewRepository,
        token_codec: PreviewTokenCodec,
        ttl_seconds: int = PREVIEW_TTL_SECONDS,
        smart_table: bool = True,
    ) -> None:
        """
        Initialize the preview service.

        Args:
            repository: Preview store
            token_codec: Token signer/verifier
            ttl_seconds: Token lifetime
            smart_table: Point generated previews at the mock OData service
        """
        self.repository = repository
        self.token_codec = token_codec
        self.ttl_seconds = ttl_seconds
        self.smart_table = smart_table

    async def create_preview(self, request: CreatePreviewRequest) -> PreviewCreated:
        """
        Build, store and sign a preview.

        Raises:
            InvalidRequestError: If neither view XML nor fields were supplied
            SecurityPolicyError: If a controller script was supplied
        """
        content = build_preview_payload(request)
        entry = await self.repository.create(content)

        # The OData URL embeds the preview ID, so it can only be set once stored.
        if self.smart_table and not request.view_xml:
            entry.model_data[SMART_TABLE_ODATA_KEY] = {
                "serviceUrl": preview_odata_url(entry.id),
                "entitySet": ODATA_ENTITY_SET,
            }

        token = self.token_codec.create_token(entry, ttl_seconds=self.ttl_seconds)

        logger.info(
            "Preview created",
            preview_id=entry.id,
            name=entry.name,
            rows=len(entry.items),
            smart_table=SMART_TABLE_ODATA_KEY in entry.model_data,
        )

        return PreviewCreated(
            preview_id=entry.id,
            preview_url=f"{API_PREFIX}/preview/{entry.id}?token={quote(token, safe='')}",
            preview_token=token,
            created_at=entry.created_at,
        )

    async def resolve_preview(
        self,
        preview_id: str,
        *tokens: Optional[str],
    ) -> Optional[PreviewPayload]:
        """
        Find a preview by ID, falling back to candidate tokens in order.

        Returns:
            The first live preview found, or None
        """
        entry = await self.repository.get(preview_id)
        if entry is not None:
            return entry

        for token in tokens:
            if not token:
                continue
            payload = self.token_codec.parse_token(token)
            if payload is not None:
                logger.debug("Preview resolved from token", preview_id=preview_id)
                return payload

        return None

    async def get_stats(self) -> dict[str, Any]:
        """Get preview statistics."""
        return await self.repository.get_stats()
