"""Service factory.

Wires settings to concrete collaborators (Odoo, Voyage AI, Qdrant) and builds
the sync services. Settings are read from the environment (and ``.env``) when
not passed in.

Usage:
    services = build_services()
    async with services:
        result = await services.data_sync.sync_model_data("crm.lead")
"""

from dataclasses import dataclass
from typing import Optional

from connectors.erp_base import SourceConfig
from connectors.odoo import OdooClient, OdooErrorClassifier
from core.config import ConfigurationError, Settings
from core.observability.logging import configure_logging, get_logger
from encoding.protocols import ProtocolVersion, get_protocol
from schema_registry.loader import SchemaFileLoader
from schema_registry.registry import SchemaRegistry
from sync.checksums import ChecksumStore
from sync.data_sync import DataSyncService
from sync.schema_sync import SchemaSyncService
from vector.embedding_client import VoyageEmbeddingClient
from vector.search import SemanticSearchService
from vector.vector_store import QdrantVectorStore

logger = get_logger(__name__)


def build_registry(settings: Settings) -> SchemaRegistry:
    """Schema registry over the configured schema file and protocol.

    Raises:
        ConfigurationError: If the configured protocol is unknown
    """
    try:
        protocol = get_protocol(ProtocolVersion(settings.schema.protocol))
    except ValueError as exc:
        raise ConfigurationError(f"Unknown ENCODING_PROTOCOL: {settings.schema.protocol}") from exc
    return SchemaRegistry(protocol, SchemaFileLoader(settings.schema.data_file, protocol))


def build_source(settings: Settings) -> OdooClient:
    odoo = settings.odoo.require()
    return OdooClient(SourceConfig(
        connector_type="odoo",
        base_url=odoo.url,
        database=odoo.database,
        username=odoo.username,
        password=odoo.password,
        timeout_seconds=odoo.timeout_seconds,
    ))


@dataclass
class SyncServices:
    """Everything one process needs to run schema and data syncs."""
    settings: Settings
    registry: SchemaRegistry
    source: OdooClient
    embedder: VoyageEmbeddingClient
    store: QdrantVectorStore
    schema_sync: SchemaSyncService
    data_sync: DataSyncService
    search: SemanticSearchService

    async def close(self) -> None:
        await self.source.disconnect()
        await self.embedder.close()
        await self.store.close()

    async def __aenter__(self) -> "SyncServices":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def build_services(settings: Optional[Settings] = None) -> SyncServices:
    """Build all sync services.

    Raises:
        ConfigurationError: If required credentials are missing
    """
    settings = settings or Settings.from_env()
    configure_logging(level=settings.log_level, json_format=settings.log_json)

    if settings.qdrant.vector_size != settings.embedding.dimensions:
        raise ConfigurationError(
            f"VECTOR_SIZE ({settings.qdrant.vector_size}) does not match "
            f"EMBEDDING_DIMENSIONS ({settings.embedding.dimensions})"
        )

    registry = build_registry(settings)
    source = build_source(settings)
    embedder = VoyageEmbeddingClient(settings.embedding)
    store = QdrantVectorStore(settings.qdrant)

    schema_sync = SchemaSyncService(
        registry,
        embedder,
        store,
        ChecksumStore(settings.schema.metadata_file),
        schema_file=settings.schema.data_file,
        embed_batch_size=settings.sync.embed_batch_size,
    )
    data_sync = DataSyncService(
        registry,
        source,
        OdooErrorClassifier(),
        embedder,
        store,
        settings=settings.sync,
    )
    logger.info(f"Built sync services for collection {settings.qdrant.collection_name}")

    return SyncServices(
        settings=settings,
        registry=registry,
        source=source,
        embedder=embedder,
        store=store,
        schema_sync=schema_sync,
        data_sync=data_sync,
        search=SemanticSearchService(embedder, store, registry),
    )
