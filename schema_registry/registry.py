"""Schema Registry.

Single source of truth mapping a coordinate to a FieldDescriptor. Built once
from a loader, cached on the instance, and rebuilt only through an explicit
``invalidate()``/``reload()``.

Usage:
    registry = SchemaRegistry(DynamicProtocol(), SchemaFileLoader(path))
    registry.get("344^6327")
    registry.by_model("crm.lead")
    registry.referencing("res.partner")
"""

import difflib
from collections import Counter
from threading import RLock
from typing import Dict, Iterator, List, Optional

from core.observability.logging import get_logger
from encoding.protocols import EncodingProtocol
from schema_registry.loader import SchemaLoader
from schema_registry.models import FieldDescriptor, IDENTITY_FIELD, ModelConfig, SchemaStats

logger = get_logger(__name__)


class _Index:
    """Lookup tables built from one load."""

    def __init__(self, descriptors: List[FieldDescriptor]):
        self.by_coordinate: Dict[str, FieldDescriptor] = {}
        self.by_model: Dict[str, List[FieldDescriptor]] = {}
        self.by_model_field: Dict[tuple, FieldDescriptor] = {}
        self.referencing: Dict[str, List[FieldDescriptor]] = {}
        self.duplicates = 0

        for descriptor in descriptors:
            if descriptor.coordinate in self.by_coordinate:
                self.duplicates += 1
                logger.warning(
                    f"Duplicate coordinate {descriptor.coordinate} for "
                    f"{descriptor.owner_model}.{descriptor.field_name}; keeping the first"
                )
                continue
            self.by_coordinate[descriptor.coordinate] = descriptor
            self.by_model.setdefault(descriptor.owner_model, []).append(descriptor)
            self.by_model_field.setdefault((descriptor.owner_model, descriptor.field_name), descriptor)

            if descriptor.is_to_one:
                target = descriptor.foreign_key_target_model
                if target:
                    self.referencing.setdefault(target, []).append(descriptor)


class SchemaRegistry:
    """In-memory field registry with explicit cache control.

    Lookups never raise for unknown keys; they return None or an empty list.
    """

    def __init__(self, protocol: EncodingProtocol, loader: SchemaLoader):
        self.protocol = protocol
        self.loader = loader
        self._index: Optional[_Index] = None
        self._lock = RLock()
        self._generation = 0

    # =========================================================================
    # Cache Control
    # =========================================================================

    def _ensure_loaded(self) -> _Index:
        if self._index is None:
            with self._lock:
                if self._index is None:
                    descriptors = self.loader.load()
                    self._index = _Index(descriptors)
                    self._generation += 1
                    logger.info(
                        f"Schema registry loaded: {len(self._index.by_coordinate)} fields, "
                        f"{len(self._index.by_model)} models"
                    )
        return self._index

    def invalidate(self) -> None:
        """Drop the cached index; the next lookup reloads from the loader."""
        with self._lock:
            if self._index is not None:
                logger.info("Schema registry cache invalidated")
            self._index = None

    def reload(self) -> int:
        """Invalidate and load immediately.

        Returns:
            Number of fields now in the registry
        """
        self.invalidate()
        return len(self._ensure_loaded().by_coordinate)

    @property
    def is_loaded(self) -> bool:
        return self._index is not None

    @property
    def generation(self) -> int:
        """Incremented on every (re)load; lets callers detect stale derived caches."""
        return self._generation

    # =========================================================================
    # Lookups
    # =========================================================================

    def get(self, coordinate: str) -> Optional[FieldDescriptor]:
        """Descriptor for an exact coordinate, or None."""
        return self._ensure_loaded().by_coordinate.get(coordinate)

    def by_model(self, model_name: str) -> List[FieldDescriptor]:
        """All fields of a model, in load order."""
        return list(self._ensure_loaded().by_model.get(model_name, []))

    def field(self, model_name: str, field_name: str) -> Optional[FieldDescriptor]:
        return self._ensure_loaded().by_model_field.get((model_name, field_name))

    def referencing(self, target_model: str) -> List[FieldDescriptor]:
        """All many2one fields, on any model, whose target is ``target_model``."""
        return list(self._ensure_loaded().referencing.get(target_model, []))

    def identity_field(self, model_name: str) -> Optional[FieldDescriptor]:
        return self.field(model_name, IDENTITY_FIELD)

    def identity_coordinate(self, model_name: str) -> Optional[str]:
        """Coordinate of a model's own ``id`` field, or None when unknown."""
        descriptor = self.identity_field(model_name)
        return self.protocol.coordinate_of(descriptor) if descriptor else None

    def model_names(self) -> List[str]:
        return sorted(self._ensure_loaded().by_model.keys())

    def has_model(self, model_name: str) -> bool:
        return model_name in self._ensure_loaded().by_model

    def all(self) -> List[FieldDescriptor]:
        return list(self._ensure_loaded().by_coordinate.values())

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._ensure_loaded().by_coordinate)

    def __contains__(self, coordinate: str) -> bool:
        return coordinate in self._ensure_loaded().by_coordinate

    def similar_models(self, model_name: str, limit: int = 5) -> List[str]:
        """Known model names close to ``model_name`` (for error hints)."""
        names = self.model_names()
        close = difflib.get_close_matches(model_name, names, n=limit, cutoff=0.5)
        if len(close) < limit:
            needle = model_name.split(".")[0]
            for name in names:
                if needle and needle in name and name not in close:
                    close.append(name)
                if len(close) >= limit:
                    break
        return close[:limit]

    # =========================================================================
    # Derived Views
    # =========================================================================

    def stats(self) -> SchemaStats:
        """Counts over the loaded registry."""
        descriptors = self.all()
        type_counts = Counter(d.field_type for d in descriptors)
        stored = sum(1 for d in descriptors if d.is_stored)
        return SchemaStats(
            total_fields=len(descriptors),
            models=len(self._ensure_loaded().by_model),
            stored_fields=stored,
            computed_fields=len(descriptors) - stored,
            foreign_keys=sum(1 for d in descriptors if d.is_foreign_key),
            by_type=dict(sorted(type_counts.items())),
        )

    def discover_model_config(self, model_name: str) -> ModelConfig:
        """Resolve the identity of a model for data sync.

        Raises:
            KeyError: If the model is unknown or has no ``id`` field; the
                message lists up to five similar model names
        """
        fields = self.by_model(model_name)
        if not fields:
            similar = self.similar_models(model_name)
            hint = f" Similar models: {', '.join(similar)}" if similar else ""
            raise KeyError(f"Model '{model_name}' not found in schema.{hint}")

        identity = self.identity_field(model_name)
        if identity is None or identity.model_id is None or identity.field_id is None:
            raise KeyError(f"Model '{model_name}' has no numeric 'id' field in schema")

        return ModelConfig(
            model_name=model_name,
            model_id=identity.model_id,
            id_field_id=identity.field_id,
            field_count=len(fields),
            identity_coordinate=self.protocol.coordinate_of(identity),
        )
