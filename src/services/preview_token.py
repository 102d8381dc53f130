"""
Signed, expiring preview tokens.

A token is ``<base64url(json)>.<base64url(hmac-sha256)>``. The JSON document
carries the preview payload plus a format version ``v`` and an expiry ``exp``
(unix seconds). Two formats are decoded:

* v1 (legacy): free-form ``controllerJs`` script. The script is never
  surfaced; a default declarative controller is synthesized instead.
* v2 (current): declarative ``controller`` config.

Every failure (shape, signature, version, expiry, payload) yields ``None`` so
callers cannot tell a tampered token from an expired or unknown one.
"""

import json
import time
from collections.abc import Mapping
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr
from pydantic import ValidationError as PydanticValidationError

from src.core.constants import PREVIEW_TTL_SECONDS, TOKEN_VERSION_CURRENT, TOKEN_VERSION_LEGACY
from src.core.logging import get_logger
from src.core.security import b64url_decode, b64url_encode, create_signature, verify_signature
from src.domain.controller import PreviewControllerConfig, normalize_controller_config
from src.domain.preview import PreviewPayload

logger = get_logger(__name__)


class _TokenDocument(BaseModel):
    """Fields shared by every token format."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    exp: StrictInt | StrictFloat
    name: StrictStr
    view_xml: StrictStr = Field(..., alias="viewXml")
    model_data: dict[str, Any] = Field(..., alias="modelData")
    created_at: StrictStr = Field(..., alias="createdAt")


class _LegacyTokenDocument(_TokenDocument):
    controller_js: StrictStr = Field(..., alias="controllerJs")

    def controller_config(self) -> PreviewControllerConfig:
        return PreviewControllerConfig()


class _CurrentTokenDocument(_TokenDocument):
    controller: dict[str, Any]

    def controller_config(self) -> PreviewControllerConfig:
        return normalize_controller_config(self.controller)


_DOCUMENT_FORMATS: dict[int, type[_TokenDocument]] = {
    TOKEN_VERSION_LEGACY: _LegacyTokenDocument,
    TOKEN_VERSION_CURRENT: _CurrentTokenDocument,
}


class PreviewTokenCodec:
    """
    Creates and verifies preview tokens.

    Args:
        secret: HMAC signing secret
        clock: Returns the current unix time in seconds (injectable for tests)
    """

    def __init__(self, secret: str, clock: Callable[[], float] = time.time) -> None:
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def sign_document(self, document: Mapping[str, Any]) -> str:
        """Encode and sign an arbitrary token document."""
        encoded = b64url_encode(
            json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        )
        return f"{encoded}.{create_signature(encoded, self._secret)}"

    def create_token(
        self,
        payload: PreviewPayload,
        ttl_seconds: int = PREVIEW_TTL_SECONDS,
    ) -> str:
        """
        Create a signed token for a preview payload.

        Args:
            payload: Preview payload to embed
            ttl_seconds: Lifetime of the token

        Returns:
            URL-safe token string
        """
        document = {
            **payload.to_document(),
            "v": TOKEN_VERSION_CURRENT,
            "exp": self._now() + ttl_seconds,
        }
        return self.sign_document(document)

    def parse_token(self, token: Any) -> Optional[PreviewPayload]:
        """
        Verify and decode a token.

        Returns:
            The decoded payload, or None when the token is malformed,
            tampered with, expired or of an unknown version.
        """
        if not isinstance(token, str):
            return None

        parts = token.split(".")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            return None
        encoded, signature = parts

        if not verify_signature(encoded, signature, self._secret):
            logger.debug("Preview token rejected", reason="signature")
            return None

        try:
            raw = json.loads(b64url_decode(encoded).decode("utf-8"))
        except ValueError:
            logger.debug("Preview token rejected", reason="encoding")
            return None

        return self._decode(raw)

    def _decode(self, raw: Any) -> Optional[PreviewPayload]:
        if not isinstance(raw, dict):
            return None

        version = raw.get("v")
        if isinstance(version, bool) or not isinstance(version, int):
            return None
        document_format = _DOCUMENT_FORMATS.get(version)
        if document_format is None:
            logger.debug("Preview token rejected", reason="version", version=version)
            return None

        try:
            document = document_format.model_validate(raw)
        except PydanticValidationError:
            logger.debug("Preview token rejected", reason="payload", version=version)
            return None

        if document.exp < self._now():
            logger.debug("Preview token rejected", reason="expired")
            return None

        return PreviewPayload(
            name=document.name,
            view_xml=document.view_xml,
            controller=document.controller_config(),
            model_data=document.model_data,
            created_at=document.created_at,
        )
