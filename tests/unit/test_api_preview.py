"""
Unit tests for preview creation and document endpoints.
"""

from urllib.parse import quote

import pytest
from httpx import AsyncClient

from src.api.deps import ServiceContainer
from src.domain.controller import PreviewControllerConfig
from src.domain.preview import PreviewPayload
from src.services.preview_token import PreviewTokenCodec

FIELDS = [
    {"displayName": "Order", "cdsField": "OrderID"},
    {"displayName": "Quantity", "type": "number"},
]


@pytest.mark.asyncio
async def test_create_preview(async_client: AsyncClient, service_container: ServiceContainer) -> None:
    """Creation returns ID, shareable URL, token and timestamp."""
    response = await async_client.post("/api/v1/preview", json={"name": "Orders", "fields": FIELDS})
    assert response.status_code == 200

    data = response.json()
    assert set(data) == {"previewId", "previewUrl", "previewToken", "createdAt"}
    assert data["previewUrl"] == f"/api/v1/preview/{data['previewId']}?token={quote(data['previewToken'], safe='')}"

    payload = service_container.token_codec.parse_token(data["previewToken"])
    assert payload is not None
    assert payload.name == "Orders"
    assert payload.created_at == data["createdAt"]
    assert len(payload.items) == 8
    assert payload.model_data["__smartTableOData"] == {
        "serviceUrl": f"/api/v1/preview/{data['previewId']}/odata/",
        "entitySet": "PreviewSet",
    }


@pytest.mark.asyncio
async def test_explicit_view_xml_skips_smart_table(async_client: AsyncClient, service_container: ServiceContainer) -> None:
    response = await async_client.post(
        "/api/v1/preview",
        json={"viewXml": "<mvc:View/>", "modelData": {"items": []}},
    )
    assert response.status_code == 200

    payload = service_container.token_codec.parse_token(response.json()["previewToken"])
    assert payload.model_data == {"items": []}


@pytest.mark.asyncio
async def test_create_preview_requires_content(async_client: AsyncClient) -> None:
    """Empty fields without markup is a validation error."""
    response = await async_client.post("/api/v1/preview", json={"fields": []})

    assert response.status_code == 400
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_create_preview_rejects_malformed_body(async_client: AsyncClient) -> None:
    """Wrongly typed or unparsable bodies answer 400 with an error message."""
    for body in ({"fields": "Revenue"}, {"fields": FIELDS, "mockData": {"a": 1}}):
        response = await async_client.post("/api/v1/preview", json=body)

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Invalid request body"
        assert data["code"] == "VALIDATION_ERROR"
        assert "detail" not in data

    response = await async_client.post(
        "/api/v1/preview",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_create_preview_refuses_controller_script(async_client: AsyncClient) -> None:
    response = await async_client.post(
        "/api/v1/preview",
        json={"fields": FIELDS, "controllerJs": "alert(document.cookie)"},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "SECURITY_POLICY"


@pytest.mark.asyncio
async def test_preview_document(async_client: AsyncClient) -> None:
    created = (
        await async_client.post(
            "/api/v1/preview",
            json={"name": "<b>Orders</b>", "fields": FIELDS, "mockData": [{"Order": "</script><script>x()"}]},
        )
    ).json()

    response = await async_client.get(f"/api/v1/preview/{created['previewId']}")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert response.headers["cache-control"] == "no-store"
    assert response.headers["x-content-type-options"] == "nosniff"
    body = response.text
    assert "<title>&lt;b&gt;Orders&lt;/b&gt;</title>" in body
    assert "window.FioriPreviewRuntime.start(previewPayload)" in body
    assert "</script><script>x()" not in body
    assert "\\u003c/script\\u003e\\u003cscript\\u003ex()" in body
    assert '<script src="/ui5-preview-runtime.js"></script>' in body


@pytest.mark.asyncio
async def test_preview_document_not_found(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/preview/unknown")

    assert response.status_code == 404
    assert response.text == "Preview not found or expired"


@pytest.mark.asyncio
async def test_preview_document_from_token(async_client: AsyncClient, service_container: ServiceContainer) -> None:
    """A valid token serves the preview even when the store does not know the ID."""
    token = service_container.token_codec.create_token(
        PreviewPayload(
            name="From Token",
            view_xml="<mvc:View/>",
            controller=PreviewControllerConfig(),
            model_data={"items": []},
            created_at="2024-05-01T12:00:00+00:00",
        )
    )

    response = await async_client.get("/api/v1/preview/restarted-instance", params={"token": token})

    assert response.status_code == 200
    assert "From Token" in response.text


@pytest.mark.asyncio
async def test_preview_document_rejects_foreign_token(async_client: AsyncClient) -> None:
    token = PreviewTokenCodec(secret="someone-else").create_token(
        PreviewPayload(
            name="Forged",
            view_xml="<mvc:View/>",
            model_data={},
            created_at="2024-05-01T12:00:00+00:00",
        )
    )

    response = await async_client.get("/api/v1/preview/x", params={"token": token})

    assert response.status_code == 404
