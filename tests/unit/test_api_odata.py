"""
Unit tests for the mock OData endpoints.
"""

from typing import Any
from urllib.parse import quote

import pytest
from httpx import AsyncClient

from src.api.deps import ServiceContainer, get_preview_service, get_settings
from src.core.config import PreviewSettings, Settings
from src.main import app

MOCK_ROWS = [
    {"Order": "A1", "Quantity": 5},
    {"Order": "A2", "Quantity": 20},
    {"Order": "A3", "Quantity": 1},
    {"Order": "A4", "Quantity": 15},
]


async def _create_preview(client: AsyncClient) -> dict[str, Any]:
    response = await client.post(
        "/api/v1/preview",
        json={
            "name": "Orders",
            "fields": [
                {"displayName": "Order", "cdsField": "OrderID"},
                {"displayName": "Quantity", "type": "number"},
            ],
            "mockData": MOCK_ROWS,
        },
    )
    assert response.status_code == 200
    return response.json()


def _odata(preview_id: str, path: str = "") -> str:
    return f"/api/v1/preview/{preview_id}/odata/{path}"


def _assert_odata_headers(response) -> None:
    assert response.headers["dataserviceversion"] == "2.0"
    assert response.headers["odata-version"] == "2.0"
    assert response.headers["cache-control"] == "no-store"


@pytest.mark.asyncio
async def test_service_document(async_client: AsyncClient) -> None:
    created = await _create_preview(async_client)

    for url in (_odata(created["previewId"]), f"/api/v1/preview/{created['previewId']}/odata"):
        response = await async_client.get(url)

        assert response.status_code == 200
        assert response.json() == {"d": {"EntitySets": ["PreviewSet"]}}
        _assert_odata_headers(response)


@pytest.mark.asyncio
async def test_metadata(async_client: AsyncClient) -> None:
    created = await _create_preview(async_client)

    response = await async_client.get(_odata(created["previewId"], "$metadata"))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert '<Property Name="Quantity" Type="Edm.Decimal"' in response.text
    assert '<Property Name="OrderID" Type="Edm.String"' in response.text
    _assert_odata_headers(response)


@pytest.mark.asyncio
async def test_collection_query(async_client: AsyncClient) -> None:
    """Order descending, take two, count reflects the filtered set."""
    created = await _create_preview(async_client)
    preview_id = created["previewId"]

    response = await async_client.get(
        _odata(preview_id, "PreviewSet"),
        params={"$orderby": "Quantity desc", "$top": "2", "$filter": "OrderID ne ''"},
    )

    assert response.status_code == 200
    body = response.json()["d"]
    assert body["__count"] == "4"
    assert [row["Quantity"] for row in body["results"]] == [20, 15]
    assert body["results"][0]["__metadata"] == {
        "uri": f"http://test/api/v1/preview/{preview_id}/odata/PreviewSet('2')",
        "type": "PreviewService.PreviewType",
    }
    _assert_odata_headers(response)


@pytest.mark.asyncio
async def test_count(async_client: AsyncClient) -> None:
    created = await _create_preview(async_client)

    response = await async_client.get(
        _odata(created["previewId"], "PreviewSet/$count"),
        params={"$filter": "Quantity ge 5"},
    )

    assert response.status_code == 200
    assert response.text == "3"
    assert response.headers["content-type"].startswith("text/plain")


@pytest.mark.asyncio
async def test_single_entity(async_client: AsyncClient) -> None:
    created = await _create_preview(async_client)

    response = await async_client.get(_odata(created["previewId"], "PreviewSet('3')"))
    missing = await async_client.get(_odata(created["previewId"], "PreviewSet('99')"))

    assert response.status_code == 200
    assert response.json()["d"]["OrderID"] == "A3"
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_unknown_entity_set(async_client: AsyncClient) -> None:
    created = await _create_preview(async_client)

    response = await async_client.get(_odata(created["previewId"], "Customers"))

    assert response.status_code == 404
    assert response.json() == {"error": "Entity set not found"}
    _assert_odata_headers(response)


@pytest.mark.asyncio
async def test_unknown_preview(async_client: AsyncClient) -> None:
    response = await async_client.get(_odata("missing", "PreviewSet"))

    assert response.status_code == 404
    assert response.json() == {"error": "Preview not found or expired"}


@pytest.mark.asyncio
async def test_token_sources(async_client: AsyncClient, service_container: ServiceContainer) -> None:
    """Path, query and Referer tokens all resolve a preview unknown to the store."""
    created = await _create_preview(async_client)
    token = created["previewToken"]
    other_id = "not-in-store"

    from_path = await async_client.get(_odata(other_id, f"token/{token}/PreviewSet"))
    from_query = await async_client.get(_odata(other_id, "PreviewSet"), params={"token": token})
    from_referer = await async_client.get(
        _odata(other_id, "PreviewSet"),
        headers={"Referer": f"http://test/api/v1/preview/{other_id}?token={quote(token)}"},
    )

    for response in (from_path, from_query, from_referer):
        assert response.status_code == 200
        assert response.json()["d"]["__count"] == "4"

    first = from_path.json()["d"]["results"][0]
    assert first["__metadata"]["uri"] == f"http://test/api/v1/preview/{other_id}/odata/token/{token}/PreviewSet('1')"


@pytest.mark.asyncio
async def test_head_and_options(async_client: AsyncClient) -> None:
    head = await async_client.head(_odata("anything", "PreviewSet"))
    options = await async_client.options(_odata("anything"))

    assert head.status_code == 200
    _assert_odata_headers(head)
    assert options.status_code == 204
    assert options.headers["allow"] == "GET,HEAD,OPTIONS"


@pytest.mark.asyncio
async def test_unrecognized_filter_fails_open(async_client: AsyncClient) -> None:
    created = await _create_preview(async_client)

    response = await async_client.get(
        _odata(created["previewId"], "PreviewSet"),
        params={"$filter": "round(Quantity) eq 5"},
    )

    assert response.status_code == 200
    assert response.json()["d"]["__count"] == "4"


@pytest.mark.asyncio
async def test_strict_filters_reject_unknown_clauses(async_client: AsyncClient) -> None:
    strict = ServiceContainer(
        Settings(
            app_env="development",
            preview=PreviewSettings(token_secret="strict-secret", strict_filters=True),
        )
    )
    app.dependency_overrides[get_settings] = lambda: strict.settings
    app.dependency_overrides[get_preview_service] = lambda: strict.preview_service

    created = await _create_preview(async_client)
    response = await async_client.get(
        _odata(created["previewId"], "PreviewSet"),
        params={"$filter": "round(Quantity) eq 5"},
    )

    assert response.status_code == 400
    assert "round(Quantity) eq 5" in response.json()["error"]
