"""
API dependencies for dependency injection.
"""

from typing import Optional

from src.core.config import Settings, settings
from src.core.exceptions import ConfigurationError
from src.core.logging import get_logger
from src.repositories.preview_repo import InMemoryPreviewRepository
from src.services.field_mapping_service import FieldMappingService
from src.services.preview_service import PreviewService
from src.services.preview_token import PreviewTokenCodec

logger = get_logger(__name__)


class ServiceContainer:
    """
    Container for all application services.
    Provides singleton instances of services.
    """

    _instance: Optional["ServiceContainer"] = None

    def __init__(self, app_settings: Optional[Settings] = None) -> None:
        self._settings = app_settings or settings
        self._initialized = False

    @classmethod
    def get_instance(cls) -> "ServiceContainer":
        """Get the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _build_token_codec(self) -> PreviewTokenCodec:
        preview_settings = self._settings.preview
        if not preview_settings.has_secret:
            if self._settings.is_production:
                raise ConfigurationError(
                    "PREVIEW_TOKEN_SECRET must be set in production",
                    details={"setting": "PREVIEW_TOKEN_SECRET"},
                )
            logger.warning(
                "PREVIEW_TOKEN_SECRET not set, using development secret",
                environment=self._settings.app_env,
            )
        return PreviewTokenCodec(secret=preview_settings.resolved_secret)

    def initialize(self) -> None:
        """Initialize all services."""
        if self._initialized:
            return

        # Initialize repositories
        self._preview_repository = InMemoryPreviewRepository(
            ttl_seconds=self._settings.preview.ttl_seconds,
        )

        self._token_codec = self._build_token_codec()

        # Initialize services
        self._preview_service = PreviewService(
            repository=self._preview_repository,
            token_codec=self._token_codec,
            ttl_seconds=self._settings.preview.ttl_seconds,
            smart_table=self._settings.preview.smart_table,
        )

        self._field_mapping_service = FieldMappingService(
            api_key=self._settings.llm.api_key,
            model=self._settings.llm.model,
            base_url=self._settings.llm.base_url,
            timeout=self._settings.llm.timeout,
        )

        self._initialized = True

    async def shutdown(self) -> None:
        """Release service resources."""
        if self._initialized:
            await self._field_mapping_service.close()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def preview_repository(self) -> InMemoryPreviewRepository:
        """Get the preview repository."""
        self.initialize()
        return self._preview_repository

    @property
    def token_codec(self) -> PreviewTokenCodec:
        """Get the preview token codec."""
        self.initialize()
        return self._token_codec

    @property
    def preview_service(self) -> PreviewService:
        """Get the preview service."""
        self.initialize()
        return self._preview_service

    @property
    def field_mapping_service(self) -> FieldMappingService:
        """Get the field mapping service."""
        self.initialize()
        return self._field_mapping_service


# Singleton container instance
container = ServiceContainer.get_instance()


# Dependency functions for FastAPI
def get_settings() -> Settings:
    """Get the application settings."""
    return container.settings


def get_preview_service() -> PreviewService:
    """Get the preview service instance."""
    return container.preview_service


def get_field_mapping_service() -> FieldMappingService:
    """Get the field mapping service instance."""
    return container.field_mapping_service
