"""Encoding exceptions."""

from typing import List, Optional


class EncodingError(Exception):
    """Base exception for coordinate encoding errors."""
    pass


class EncodingMapError(EncodingError):
    """An encoding map cannot be built or used for a model.

    Raised for programmer-contract violations: asking for a model the registry
    does not know, a many2one whose target identity cannot be resolved, or
    encoding a record with a map built for a different model.
    """
    def __init__(self, message: str, model_name: Optional[str] = None, field_name: Optional[str] = None):
        super().__init__(message)
        self.model_name = model_name
        self.field_name = field_name


class SchemaValidationError(EncodingError):
    """A fetched record carries fields the schema does not document."""
    def __init__(self, message: str, missing_in_schema: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_in_schema = list(missing_in_schema or [])
