"""Application configuration.

Settings are read from environment variables. A ``.env`` file at the
repository root is loaded first when present.

Environment variables:
- ODOO_URL, ODOO_DB, ODOO_USERNAME, ODOO_PASSWORD, ODOO_TIMEOUT_SECONDS
- QDRANT_HOST, QDRANT_API_KEY, SCHEMA_COLLECTION_NAME, VECTOR_SIZE
- VOYAGE_API_KEY, EMBEDDING_MODEL, EMBEDDING_DIMENSIONS
- SCHEMA_DATA_FILE, SYNC_METADATA_FILE, ENCODING_PROTOCOL
- FETCH_BATCH_SIZE, EMBED_BATCH_SIZE, MAX_RESTRICTION_RETRIES
- LOG_LEVEL, LOG_JSON
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

# Load .env file if it exists
from dotenv import load_dotenv
REPO_ROOT = Path(__file__).resolve().parents[1]
env_path = REPO_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)


MAX_EMBEDDING_BATCH = 128


class ConfigurationError(ValueError):
    """A required setting is missing or invalid."""
    pass


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _resolve_path(raw: str) -> Path:
    path = Path(raw)
    return path if path.is_absolute() else REPO_ROOT / path


# =============================================================================
# Settings
# =============================================================================

@dataclass
class OdooSettings:
    """Connection settings for the Odoo source system."""
    url: Optional[str] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    timeout_seconds: int = 120

    @classmethod
    def from_env(cls) -> "OdooSettings":
        return cls(
            url=os.getenv("ODOO_URL"),
            database=os.getenv("ODOO_DB"),
            username=os.getenv("ODOO_USERNAME"),
            password=os.getenv("ODOO_PASSWORD"),
            timeout_seconds=_int_env("ODOO_TIMEOUT_SECONDS", 120),
        )

    def require(self) -> "OdooSettings":
        """Raise ConfigurationError naming every missing credential."""
        missing = [
            name for name, value in (
                ("ODOO_URL", self.url),
                ("ODOO_DB", self.database),
                ("ODOO_USERNAME", self.username),
                ("ODOO_PASSWORD", self.password),
            ) if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing Odoo settings: {', '.join(missing)}")
        return self


@dataclass
class QdrantSettings:
    """Vector store settings."""
    host: str = "http://localhost:6333"
    api_key: Optional[str] = None
    collection_name: str = "odoo_schema"
    vector_size: int = 512

    @classmethod
    def from_env(cls) -> "QdrantSettings":
        return cls(
            host=os.getenv("QDRANT_HOST", "http://localhost:6333"),
            api_key=os.getenv("QDRANT_API_KEY") or None,
            collection_name=os.getenv("SCHEMA_COLLECTION_NAME", "odoo_schema"),
            vector_size=_int_env("VECTOR_SIZE", _int_env("EMBEDDING_DIMENSIONS", 512)),
        )


@dataclass
class EmbeddingSettings:
    """Embedding provider settings (Voyage AI)."""
    api_key: Optional[str] = None
    model: str = "voyage-3-lite"
    dimensions: int = 512
    base_url: str = "https://api.voyageai.com/v1"
    max_batch_size: int = MAX_EMBEDDING_BATCH
    timeout_seconds: int = 60

    @classmethod
    def from_env(cls) -> "EmbeddingSettings":
        return cls(
            api_key=os.getenv("VOYAGE_API_KEY") or None,
            model=os.getenv("EMBEDDING_MODEL", "voyage-3-lite"),
            dimensions=_int_env("EMBEDDING_DIMENSIONS", 512),
            base_url=os.getenv("VOYAGE_BASE_URL", "https://api.voyageai.com/v1"),
        )

    def require(self) -> "EmbeddingSettings":
        if not self.api_key:
            raise ConfigurationError("VOYAGE_API_KEY is not set")
        return self


@dataclass
class SchemaSettings:
    """Schema source and checksum state locations."""
    data_file: Path = field(default_factory=lambda: REPO_ROOT / "data" / "odoo_schema.txt")
    metadata_file: Path = field(default_factory=lambda: REPO_ROOT / "data" / "sync-metadata.json")
    protocol: str = "dynamic"

    @classmethod
    def from_env(cls) -> "SchemaSettings":
        return cls(
            data_file=_resolve_path(os.getenv("SCHEMA_DATA_FILE", "data/odoo_schema.txt")),
            metadata_file=_resolve_path(os.getenv("SYNC_METADATA_FILE", "data/sync-metadata.json")),
            protocol=os.getenv("ENCODING_PROTOCOL", "dynamic"),
        )


@dataclass
class SyncSettings:
    """Batch sizes and retry budget for data sync."""
    fetch_batch_size: int = 200
    embed_batch_size: int = 50
    max_restriction_retries: int = 5

    @classmethod
    def from_env(cls) -> "SyncSettings":
        settings = cls(
            fetch_batch_size=_int_env("FETCH_BATCH_SIZE", 200),
            embed_batch_size=_int_env("EMBED_BATCH_SIZE", 50),
            max_restriction_retries=_int_env("MAX_RESTRICTION_RETRIES", 5),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.fetch_batch_size < 1:
            raise ConfigurationError("FETCH_BATCH_SIZE must be at least 1")
        if not 1 <= self.embed_batch_size <= MAX_EMBEDDING_BATCH:
            raise ConfigurationError(f"EMBED_BATCH_SIZE must be between 1 and {MAX_EMBEDDING_BATCH}")
        if self.max_restriction_retries < 0:
            raise ConfigurationError("MAX_RESTRICTION_RETRIES must not be negative")


@dataclass
class Settings:
    """All settings."""
    odoo: OdooSettings = field(default_factory=OdooSettings)
    qdrant: QdrantSettings = field(default_factory=QdrantSettings)
    embedding: EmbeddingSettings = field(default_factory=EmbeddingSettings)
    schema: SchemaSettings = field(default_factory=SchemaSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            odoo=OdooSettings.from_env(),
            qdrant=QdrantSettings.from_env(),
            embedding=EmbeddingSettings.from_env(),
            schema=SchemaSettings.from_env(),
            sync=SyncSettings.from_env(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_bool_env("LOG_JSON"),
        )
