# catalog_service/core/config.py
import os
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "Catalog Product Service"
    API_PREFIX: str = "/api"

    # MongoDB Settings
    MONGODB_URL: str = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
    MONGODB_DATABASE: str = os.getenv("MONGODB_DATABASE", "catalog")

    # Cloudinary Settings
    CLOUDINARY_CLOUD_NAME: str = os.getenv("CLOUDINARY_CLOUD_NAME", "")
    CLOUDINARY_API_KEY: str = os.getenv("CLOUDINARY_API_KEY", "")
    CLOUDINARY_API_SECRET: str = os.getenv("CLOUDINARY_API_SECRET", "")
    MEDIA_DEFAULT_FOLDER: str = "products"

    # Pagination
    DEFAULT_PAGE_LIMIT: int = 50

    # Logging / OpenTelemetry
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    OTEL_ENABLED: bool = False
    OTEL_SERVICE_NAME: str = os.getenv("OTEL_SERVICE_NAME", "catalog-product-service")
    OTEL_EXPORTER_OTLP_ENDPOINT: str = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "otel-collector:4317")

    # seconds to wait for pending asset deletions on shutdown
    BACKGROUND_DRAIN_TIMEOUT: float = 10.0

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
