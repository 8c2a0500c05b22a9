"""Resilient Field-Restriction Retry Loop.

Wraps ``RecordSource.search_read``. When the source refuses a field
(permissions, a broken compute method), the offending fields are identified,
removed and remembered for the rest of the run, and the fetch is retried.

Identification:
- The error names the fields: remove exactly those.
- A "singleton" error names none: bisect by fetching ``id`` plus one candidate
  field at a time with ``limit=2`` (the failure only shows with 2+ records).

Any error the classifier does not recognise as a restriction propagates
unchanged.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from connectors.erp_base import RecordSource, SourceError, SourceRPCError
from core.models.restrictions import FieldRestriction, RestrictionReason
from core.observability.logging import get_logger
from core.observability.metrics import record_field_restricted

logger = get_logger(__name__)

DEFAULT_MAX_RETRIES = 5
BISECTION_LIMIT = 2
SAFE_BASE_FIELD = "id"


# =============================================================================
# Exceptions
# =============================================================================

class RestrictionRetryExhausted(SourceError):
    """The retry budget ran out before a fetch succeeded."""
    def __init__(self, message: str, model: Optional[str] = None, removed_fields: Optional[List[str]] = None):
        super().__init__(message, model)
        self.removed_fields = list(removed_fields or [])


class AllFieldsRestrictedError(SourceError):
    """Every requested field is restricted; no fetch is issued."""
    def __init__(self, message: str, model: Optional[str] = None, removed_fields: Optional[List[str]] = None):
        super().__init__(message, model)
        self.removed_fields = list(removed_fields or [])


# =============================================================================
# Error Classification
# =============================================================================

class ErrorKind(str, Enum):
    """Shape of a source error as far as the retry loop is concerned."""
    SECURITY_RESTRICTION = "security_restriction"
    COMPUTE_ERROR = "compute_error"
    SINGLETON = "singleton"
    UNKNOWN_FIELD = "unknown_field"
    NOT_RESTRICTION = "not_restriction"


_KIND_TO_REASON = {
    ErrorKind.SECURITY_RESTRICTION: RestrictionReason.SECURITY_RESTRICTION,
    ErrorKind.COMPUTE_ERROR: RestrictionReason.COMPUTE_ERROR,
    ErrorKind.SINGLETON: RestrictionReason.COMPUTE_ERROR,
    ErrorKind.UNKNOWN_FIELD: RestrictionReason.UNKNOWN,
}


@dataclass
class ErrorClassification:
    """Structured result of classifying one error message."""
    kind: ErrorKind
    fields: List[str] = field(default_factory=list)

    @property
    def is_restriction(self) -> bool:
        return self.kind != ErrorKind.NOT_RESTRICTION

    @property
    def reason(self) -> RestrictionReason:
        return _KIND_TO_REASON.get(self.kind, RestrictionReason.UNKNOWN)


class ErrorClassifier(ABC):
    """Turns a source error message into an ErrorClassification."""

    @abstractmethod
    def classify(self, message: str) -> ErrorClassification:
        pass


# =============================================================================
# Run-scoped Restriction Memory
# =============================================================================

class RestrictionTracker:
    """Fields refused during one sync run, keyed by field name."""

    def __init__(self):
        self._restrictions: Dict[str, FieldRestriction] = {}

    def add(self, restriction: FieldRestriction) -> bool:
        """Remember a restriction. Returns False when the field was already known."""
        if restriction.field_name in self._restrictions:
            return False
        self._restrictions[restriction.field_name] = restriction
        return True

    def is_restricted(self, field_name: str) -> bool:
        return field_name in self._restrictions

    def filter_fields(self, fields: List[str]) -> List[str]:
        return [f for f in fields if f not in self._restrictions]

    def as_dict(self) -> Dict[str, FieldRestriction]:
        return dict(self._restrictions)

    def as_list(self) -> List[FieldRestriction]:
        return list(self._restrictions.values())

    def field_names(self) -> List[str]:
        return list(self._restrictions.keys())

    def __len__(self) -> int:
        return len(self._restrictions)

    def __contains__(self, field_name: object) -> bool:
        return field_name in self._restrictions


@dataclass
class ResilientFetchResult:
    """Outcome of one resilient fetch."""
    records: List[Dict[str, Any]]
    fields: List[str]
    restrictions: List[FieldRestriction] = field(default_factory=list)
    retry_count: int = 0
    warnings: List[str] = field(default_factory=list)


# =============================================================================
# Retry Loop
# =============================================================================

class ResilientFetcher:
    """search_read with automatic removal of restricted fields.

    Usage:
        fetcher = ResilientFetcher(source, OdooErrorClassifier())
        result = await fetcher.search_read_with_retry("crm.lead", [], fields, offset=0, limit=200)
        result.records, fetcher.tracker.as_list()
    """

    def __init__(
        self,
        source: RecordSource,
        classifier: ErrorClassifier,
        max_retries: int = DEFAULT_MAX_RETRIES,
        tracker: Optional[RestrictionTracker] = None,
        on_field_restricted: Optional[Callable[[FieldRestriction], None]] = None,
    ):
        self.source = source
        self.classifier = classifier
        self.max_retries = max_retries
        self.tracker = tracker if tracker is not None else RestrictionTracker()
        self.on_field_restricted = on_field_restricted

    async def search_read_with_retry(
        self,
        model: str,
        domain: Optional[List[Any]],
        fields: List[str],
        offset: int = 0,
        limit: Optional[int] = None,
        order: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> ResilientFetchResult:
        """Fetch records, removing restricted fields until the fetch succeeds.

        Fields already restricted earlier in the run are excluded up front.

        Raises:
            AllFieldsRestrictedError: If no fields would remain
            RestrictionRetryExhausted: If the retry budget is exceeded
            SourceError: Any non-restriction error, unchanged
        """
        current = self.tracker.filter_fields(list(fields))
        if not current:
            raise AllFieldsRestrictedError(
                f"All fields are restricted for model {model}",
                model=model,
                removed_fields=self.tracker.field_names(),
            )

        removed: List[str] = []
        discovered: List[FieldRestriction] = []
        warnings: List[str] = []
        retry_count = 0

        while True:
            try:
                records = await self.source.search_read(
                    model, domain=domain, fields=current, offset=offset, limit=limit, order=order, context=context,
                )
                if retry_count:
                    logger.info(
                        f"[{model}] Fetch succeeded after {retry_count} retries "
                        f"without {len(removed)} restricted fields"
                    )
                return ResilientFetchResult(
                    records=records,
                    fields=list(current),
                    restrictions=discovered,
                    retry_count=retry_count,
                    warnings=warnings,
                )
            except SourceRPCError as exc:
                classification = self.classifier.classify(exc.remote_message)
                if not classification.is_restriction:
                    raise

                if retry_count >= self.max_retries:
                    raise RestrictionRetryExhausted(
                        f"Gave up on {model} after {retry_count} retries; removed fields: "
                        f"{', '.join(removed) or 'none'}",
                        model=model,
                        removed_fields=removed,
                    ) from exc

                if classification.kind == ErrorKind.SINGLETON and not classification.fields:
                    warnings.append(f"Singleton error in {model} - testing each field individually")
                    offending = await self._bisect(model, domain, current, offset, order, context, warnings)
                    if not offending:
                        warnings.append("Could not identify problematic fields through individual testing")
                        raise
                else:
                    offending = [name for name in classification.fields if name in current]
                    if not offending:
                        warnings.append(
                            f"Could not match restricted fields in error: {exc.remote_message[:200]}"
                        )
                        raise

                for name in offending:
                    current.remove(name)
                    removed.append(name)
                    restriction = FieldRestriction(
                        field_name=name,
                        reason=classification.reason,
                        discovered_at_offset=offset,
                        message=exc.remote_message[:200],
                    )
                    discovered.append(restriction)
                    self._remember(model, restriction, warnings)

                if not current:
                    raise AllFieldsRestrictedError(
                        f"All fields are restricted for model {model}. Cannot proceed with sync.",
                        model=model,
                        removed_fields=removed,
                    ) from exc

                retry_count += 1

    async def _bisect(
        self,
        model: str,
        domain: Optional[List[Any]],
        candidates: List[str],
        offset: int,
        order: Optional[str],
        context: Optional[Dict[str, Any]],
        warnings: List[str],
    ) -> List[str]:
        """Test each candidate alone (with ``id``) over two records."""
        logger.warning(f"[{model}] Singleton error - testing {len(candidates)} fields individually")
        problematic = []
        for name in candidates:
            if name == SAFE_BASE_FIELD:
                continue
            try:
                await self.source.search_read(
                    model, domain=domain, fields=[SAFE_BASE_FIELD, name],
                    offset=offset, limit=BISECTION_LIMIT, order=order, context=context,
                )
            except SourceRPCError as exc:
                if self.classifier.classify(exc.remote_message).kind == ErrorKind.SINGLETON:
                    problematic.append(name)
                else:
                    warnings.append(
                        f"[{model}] Field '{name}' had non-singleton error: {exc.remote_message[:100]}"
                    )
        if problematic:
            logger.warning(f"[{model}] Found {len(problematic)} problematic field(s): {', '.join(problematic)}")
        return problematic

    def _remember(self, model: str, restriction: FieldRestriction, warnings: List[str]) -> None:
        if not self.tracker.add(restriction):
            return
        message = (
            f"[{model}] Field '{restriction.field_name}' restricted "
            f"({restriction.reason.value}) - removed from query"
        )
        warnings.append(message)
        logger.warning(message)
        record_field_restricted(restriction.field_name, restriction.reason.value)
        if self.on_field_restricted:
            self.on_field_restricted(restriction)
