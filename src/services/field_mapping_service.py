"""
Field mapping service.

Maps a natural-language report request to SAP CDS field mappings using the
OpenAI Responses API, with a heuristic mock used when the LLM is disabled,
unconfigured or fails. The service never raises for LLM problems: every
failure degrades to the mock and is reported through ``source``/``reason``.
"""

import json
import re
from typing import Any, Literal, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic import ValidationError as PydanticValidationError

from src.core.constants import (
    MAX_DISPLAY_NAME_LENGTH,
    MAX_MOCK_FIELDS,
    MOCK_CDS_VIEW,
    PROMPT_NOISE_PHRASES,
    MappingSource,
)
from src.core.exceptions import LLMError
from src.core.logging import get_logger
from src.domain.field_mapping import FieldMapping

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are an SAP CDS field mapping expert.

Goal:
- Read the user request for a report.
- Extract only the business fields requested by the user.
- Choose the most appropriate SAP CDS view and CDS field for each one.

Hard rules:
- Return only JSON that matches the schema.
- Output fields only. Never output report title.
- Keep displayName in English.
- Keep displayName concise (usually 1 to 4 words), no full sentence.
- When the prompt explicitly lists fields, preserve the same field order.
- Do not include command text as a field (examples: "create report", "show me", "generate report").
- Do not merge different requested fields into one field.
- Do not invent unrelated fields.
- Avoid duplicates.
- Choose type only from: string, number, date, boolean.
- Do not depend on a fixed list of CDS views. Infer the best CDS view for each field.
- If uncertain, still return the best candidate CDS view and CDS field names."""

OUTPUT_JSON_SCHEMA: dict[str, Any] = {
    "name": "sap_field_mapping",
    "strict": True,
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "fields": {
                "type": "array",
                "minItems": 1,
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "properties": {
                        "displayName": {"type": "string", "minLength": 1},
                        "cdsField": {"type": "string", "minLength": 1},
                        "cdsView": {"type": "string", "minLength": 1},
                        "type": {
                            "type": "string",
                            "enum": ["string", "number", "date", "boolean"],
                        },
                    },
                    "required": ["displayName", "cdsField", "cdsView", "type"],
                },
            },
        },
        "required": ["fields"],
    },
}

DEFAULT_FIELDS = [
    FieldMapping(display_name=f"Field {n}", cds_field=f"Field{n}", cds_view=MOCK_CDS_VIEW)
    for n in (1, 2, 3)
]

_WITH_SEGMENT = re.compile(r"\bwith\b(.*)", re.IGNORECASE | re.DOTALL)
_AND_WORD = re.compile(r"\band\b", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_LEADING_FILLER = re.compile(
    r"^(a|an|the|please|i|we|need|want|create|generate|show)\s+", re.IGNORECASE
)
_TRAILING_FIELD_WORD = re.compile(r"\s+fields?$", re.IGNORECASE)
_NON_ALPHANUMERIC_SPACE = re.compile(r"[^a-zA-Z0-9 ]")
_CODE_FENCE = re.compile(r"```(?:json)?\n?")


class _LLMField(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    display_name: StrictStr = Field(..., alias="displayName")
    cds_field: StrictStr = Field(..., alias="cdsField")
    cds_view: StrictStr = Field(..., alias="cdsView")
    type: Literal["string", "number", "date", "boolean"]


class _LLMResponse(BaseModel):
    fields: list[_LLMField]


class MappingResult(BaseModel):
    """Field mappings plus where they came from."""

    fields: list[FieldMapping]
    source: MappingSource
    reason: Optional[str] = None

    @property
    def payload(self) -> dict[str, Any]:
        return {"fields": [field.to_dict() for field in self.fields]}


# =============================================================================
# Heuristic mock
# =============================================================================


def to_title_case(value: str) -> str:
    return " ".join(part[0].upper() + part[1:].lower() for part in value.split())


def to_cds_field_name(value: str) -> str:
    """PascalCase technical name from a display name."""
    parts = _NON_ALPHANUMERIC_SPACE.sub(" ", value).split()
    if not parts:
        return "FieldValue"
    return "".join(part[0].upper() + part[1:] for part in parts)


def parse_requested_fields(prompt: str) -> list[str]:
    """
    Pull candidate field names out of a free-text request.

    The text after ``with`` is preferred since it usually lists the fields.
    """
    match = _WITH_SEGMENT.search(prompt)
    segment = match.group(1) if match else prompt
    segment = _WHITESPACE.sub(" ", _AND_WORD.sub(",", segment).replace(".", ","))

    names: list[str] = []
    for token in segment.split(","):
        token = _LEADING_FILLER.sub("", token.strip())
        token = _TRAILING_FIELD_WORD.sub("", token).strip()
        if token and token not in names:
            names.append(token)
    return names[:MAX_MOCK_FIELDS]


def build_mock_fields(prompt: str) -> list[FieldMapping]:
    """Heuristic mapping: one string field per requested name."""
    fields = []
    for name in parse_requested_fields(prompt):
        display_name = to_title_case(name)
        if not display_name:
            continue
        fields.append(
            FieldMapping(
                display_name=display_name,
                cds_field=to_cds_field_name(display_name),
                cds_view=MOCK_CDS_VIEW,
            )
        )
    return fields or [field.model_copy() for field in DEFAULT_FIELDS]


# =============================================================================
# LLM response handling
# =============================================================================


def _normalize_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def normalize_mappings(fields: list[_LLMField]) -> list[FieldMapping]:
    """Drop empty, overlong, command-like and duplicate mappings."""
    seen: set[str] = set()
    normalized = []

    for raw in fields:
        display_name = _normalize_whitespace(raw.display_name)
        cds_field = _normalize_whitespace(raw.cds_field)
        cds_view = _normalize_whitespace(raw.cds_view)
        display_key = display_name.lower()

        if not display_name or not cds_field or not cds_view:
            continue
        if len(display_name) > MAX_DISPLAY_NAME_LENGTH:
            continue
        if any(noise in display_key for noise in PROMPT_NOISE_PHRASES):
            continue

        unique_key = f"{display_key}|{cds_view.lower()}|{cds_field.lower()}"
        if unique_key in seen:
            continue
        seen.add(unique_key)

        normalized.append(
            FieldMapping(
                display_name=display_name,
                cds_field=cds_field,
                cds_view=cds_view,
                type=raw.type,
            )
        )

    return normalized


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text.strip())


def extract_output_text(data: Any) -> Optional[str]:
    """
    Read the text output of a Responses API reply.

    ``output_text`` wins; otherwise the first non-blank ``output_text``/``text``
    content item of ``output[]``.
    """
    if not isinstance(data, dict):
        return None

    output_text = data.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text

    output = data.get("output")
    if not isinstance(output, list):
        return None

    for item in output:
        content = item.get("content") if isinstance(item, dict) else None
        if not isinstance(content, list):
            continue
        for part in content:
            if (
                isinstance(part, dict)
                and part.get("type") in ("output_text", "text")
                and isinstance(part.get("text"), str)
                and part["text"].strip()
            ):
                return part["text"]

    return None


class FieldMappingService:
    """
    Service for mapping report prompts to CDS fields.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 20.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the field mapping service.

        Args:
            api_key: OpenAI API key; empty disables the LLM
            model: Model name
            base_url: API base URL
            timeout: Request timeout in seconds
            http_client: Pre-built client (tests inject a mock transport)
        """
        self.api_key = api_key.strip()
        self.model = model.strip() or "gpt-4o-mini"
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def generate(self, prompt: str, force_mock: bool = False) -> MappingResult:
        """
        Generate field mappings for a prompt.

        Args:
            prompt: Natural-language report request
            force_mock: Skip the LLM and use the heuristic mapping

        Returns:
            Mappings with their source and, for mock results, the reason
        """
        if force_mock or not self.api_key:
            reason = "force_mock_enabled" if force_mock else "api_key_missing"
            return MappingResult(
                fields=build_mock_fields(prompt),
                source=MappingSource.MOCK,
                reason=reason,
            )

        try:
            fields = await self._request_mappings(prompt)
        except LLMError as e:
            logger.warning(
                "Field mapping fell back to mock",
                reason=e.reason,
                error=e.message,
                **e.details,
            )
            return MappingResult(
                fields=build_mock_fields(prompt),
                source=MappingSource.MOCK_FALLBACK,
                reason=e.reason,
            )

        logger.info("Field mapping generated", model=self.model, fields=len(fields))
        return MappingResult(fields=fields, source=MappingSource.EXTERNAL)

    def _build_request(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "temperature": 0,
            "input": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f"User request:\n{prompt}\n\n"
                        "Return only the JSON object defined by the schema."
                    ),
                },
            ],
            "text": {"format": {"type": "json_schema", **OUTPUT_JSON_SCHEMA}},
        }

    async def _request_mappings(self, prompt: str) -> list[FieldMapping]:
        """
        Call the LLM once and validate its answer.

        Raises:
            LLMError: On any transport, HTTP or payload failure
        """
        client = await self._get_client()

        try:
            response = await client.post(
                f"{self.base_url}/responses",
                json=self._build_request(prompt),
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise LLMError("llm_timeout", f"Request timed out: {e}") from e
        except httpx.RequestError as e:
            raise LLMError("llm_request_error", f"Request failed: {e}") from e

        if response.is_error:
            raise LLMError(
                f"llm_http_{response.status_code}",
                f"HTTP {response.status_code}",
                details={"status_code": response.status_code, "response_text": response.text[:500]},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise LLMError("llm_parse_error", "Response body is not JSON") from e

        text = extract_output_text(data)
        if not text:
            raise LLMError("llm_empty_output", "No text content in response")

        try:
            parsed = json.loads(strip_code_fences(text))
        except ValueError as e:
            raise LLMError("llm_parse_error", f"Output is not JSON: {e}") from e

        try:
            validated = _LLMResponse.model_validate(parsed)
        except PydanticValidationError as e:
            raise LLMError(
                "llm_invalid_schema",
                "Output does not match the mapping schema",
                details={"errors": e.error_count()},
            ) from e

        fields = normalize_mappings(validated.fields)
        if not fields:
            raise LLMError("llm_empty_after_normalization", "No usable fields after normalization")
        return fields
