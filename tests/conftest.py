"""
Pytest configuration and fixtures.
"""

from datetime import datetime, timezone
from typing import Any, AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from src.api.deps import ServiceContainer, get_field_mapping_service, get_preview_service, get_settings
from src.core.config import LLMSettings, PreviewSettings, Settings
from src.main import app

TEST_SECRET = "test-preview-secret"


class FakeClock:
    """Settable clock returning aware datetimes."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a fixed token secret and SmartTable mode on."""
    return Settings(
        app_env="development",
        preview=PreviewSettings(token_secret=TEST_SECRET, smart_table=True, strict_filters=False),
        llm=LLMSettings(api_key="", MOCK_AI=False),
    )


@pytest.fixture
def service_container(test_settings: Settings) -> ServiceContainer:
    """Fresh, isolated service container."""
    return ServiceContainer(test_settings)


@pytest.fixture
async def async_client(service_container: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    app.dependency_overrides[get_settings] = lambda: service_container.settings
    app.dependency_overrides[get_preview_service] = lambda: service_container.preview_service
    app.dependency_overrides[get_field_mapping_service] = lambda: service_container.field_mapping_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def order_model_data() -> dict[str, Any]:
    """Three order rows with declared table columns."""
    return {
        "items": [
            {"OrderID": "A1", "Quantity": 5, "Status": "Open"},
            {"OrderID": "A2", "Quantity": 12, "Status": "Closed"},
            {"OrderID": "A3", "Quantity": 3, "Status": "Open"},
        ],
        "__previewColumns": [
            {"key": "OrderID", "label": "Order", "type": "string"},
            {"key": "Quantity", "label": "Quantity", "type": "number"},
            {"key": "Status", "label": "Status", "type": "enum", "enumValues": ["Open", "Closed"]},
        ],
    }
