"""
Application settings loaded from the environment.

Values come from process environment variables, optionally seeded from a
`.env` file at the repository root (python-dotenv). Settings are read once at
startup and carried on the application context; nothing else in the package
calls os.getenv directly.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from dotenv import load_dotenv

# Repository root: backend/catalog/core/config.py -> ../../../
ENV_PATH = Path(__file__).parent.parent.parent.parent / ".env"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass
class Settings:
    """Runtime configuration for the catalog API."""

    # Document store
    mongodb_uri: str = "mongodb://localhost:27017/swiftcart"
    mongodb_database: str = "swiftcart"
    mongodb_timeout_ms: int = 5000

    # Volatile store (cache)
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_connect_timeout: float = 5.0
    redis_max_retries: int = 3
    cache_single_flight: bool = True

    # Search index
    elasticsearch_enabled: bool = True
    elasticsearch_node: str = "http://localhost:9200"
    elasticsearch_username: str = ""
    elasticsearch_password: str = ""
    elasticsearch_timeout: float = 5.0
    search_index_name: str = "products"
    reindex_batch_size: int = 100

    # Observability
    log_level: str = "INFO"
    log_json: bool = True
    service_name: str = "catalog_api"
    otlp_endpoint: Optional[str] = None

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "Settings":
        """Build settings from environment variables (and `.env` if present)."""
        if load_env_file and ENV_PATH.exists():
            load_dotenv(ENV_PATH)

        return cls(
            mongodb_uri=os.getenv("MONGODB_URI", cls.mongodb_uri),
            mongodb_database=os.getenv("MONGODB_DATABASE", cls.mongodb_database),
            mongodb_timeout_ms=_env_int("MONGODB_TIMEOUT_MS", cls.mongodb_timeout_ms),
            redis_url=os.getenv("REDIS_URL") or None,
            redis_host=os.getenv("REDIS_HOST", cls.redis_host),
            redis_port=_env_int("REDIS_PORT", cls.redis_port),
            redis_password=os.getenv("REDIS_PASSWORD", cls.redis_password),
            redis_connect_timeout=_env_float("REDIS_CONNECT_TIMEOUT", cls.redis_connect_timeout),
            redis_max_retries=_env_int("REDIS_MAX_RETRIES", cls.redis_max_retries),
            cache_single_flight=_env_bool("CACHE_SINGLE_FLIGHT", cls.cache_single_flight),
            elasticsearch_enabled=_env_bool("ELASTICSEARCH_ENABLED", cls.elasticsearch_enabled),
            elasticsearch_node=os.getenv("ELASTICSEARCH_NODE", cls.elasticsearch_node),
            elasticsearch_username=os.getenv("ELASTICSEARCH_USERNAME", cls.elasticsearch_username),
            elasticsearch_password=os.getenv("ELASTICSEARCH_PASSWORD", cls.elasticsearch_password),
            elasticsearch_timeout=_env_float("ELASTICSEARCH_TIMEOUT", cls.elasticsearch_timeout),
            search_index_name=os.getenv("SEARCH_INDEX_NAME", cls.search_index_name),
            reindex_batch_size=_env_int("REINDEX_BATCH_SIZE", cls.reindex_batch_size),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
            log_json=_env_bool("LOG_JSON", cls.log_json),
            service_name=os.getenv("OTEL_SERVICE_NAME", cls.service_name),
            otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or None,
        )

    def get_redis_url(self) -> str:
        """Redis URL, built from host/port/password when REDIS_URL is unset."""
        if self.redis_url:
            return self.redis_url
        if self.redis_password:
            return f"redis://:{quote(self.redis_password, safe='')}@{self.redis_host}:{self.redis_port}"
        return f"redis://{self.redis_host}:{self.redis_port}"
