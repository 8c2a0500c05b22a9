"""Artifact storage for JSON state files and source text files.

Provides a consistent interface for storing and retrieving the files the sync
pipeline persists between runs (checksum metadata, schema source files) with
integrity hashes and metadata tracking.
"""

import hashlib
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from core.models.refs import DataReference


def _compute_sha256(data: bytes) -> str:
    """Compute SHA256 hash of bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_md5(data: bytes) -> str:
    """Compute MD5 hex digest of bytes (content fingerprint, not a security hash)."""
    return hashlib.md5(data).hexdigest()


def put_json(obj: Any, path: Path, ensure_parent: bool = True) -> DataReference:
    """Store a JSON-serializable object and return a DataReference.

    Output is deterministic: keys are written in insertion order with a fixed
    indent, so the same object always produces the same bytes.

    Args:
        obj: Object to serialize to JSON (dict, Pydantic model, etc.)
        path: File path where the artifact will be stored
        ensure_parent: Create parent directories if they don't exist

    Returns:
        DataReference with artifact metadata for retrieval

    Raises:
        TypeError: If object is not JSON-serializable
    """
    if ensure_parent:
        path.parent.mkdir(parents=True, exist_ok=True)

    # Handle Pydantic models
    if hasattr(obj, "model_dump"):
        obj_dict = obj.model_dump(mode="json", by_alias=True)
    else:
        obj_dict = obj

    json_bytes = json.dumps(obj_dict, indent=2).encode("utf-8")

    # Write to a sibling file first so a crash never leaves a half-written state file
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_bytes(json_bytes)
    tmp_path.replace(path)

    return DataReference(
        storage_uri=str(path.absolute()),
        content_hash=_compute_sha256(json_bytes),
        content_type="application/json",
        size_bytes=len(json_bytes),
        stored_at=datetime.utcnow(),
    )


def get_json(ref: DataReference, validate_hash: bool = True) -> dict:
    """Retrieve JSON artifact from a DataReference.

    Args:
        ref: DataReference pointing to the artifact
        validate_hash: Verify content hash matches reference

    Returns:
        Deserialized JSON object

    Raises:
        FileNotFoundError: If artifact path doesn't exist
        ValueError: If hash validation fails
        json.JSONDecodeError: If file is not valid JSON
    """
    path = Path(ref.storage_uri)

    if not path.exists():
        raise FileNotFoundError(f"Artifact not found: {ref.storage_uri}")

    json_bytes = path.read_bytes()

    if validate_hash:
        actual_hash = _compute_sha256(json_bytes)
        if actual_hash != ref.content_hash:
            raise ValueError(
                f"Hash mismatch for {ref.storage_uri}: "
                f"expected {ref.content_hash}, got {actual_hash}"
            )

    return json.loads(json_bytes.decode("utf-8"))


def read_json_file(path: Path) -> Optional[Any]:
    """Read a JSON state file, returning None when it does not exist.

    Raises:
        json.JSONDecodeError: If the file exists but is not valid JSON
        UnicodeDecodeError: If the file is not UTF-8
    """
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8"))


def file_md5(path: Path) -> Optional[str]:
    """MD5 of a file's bytes, or None when the file does not exist."""
    if not path.exists():
        return None
    return compute_md5(path.read_bytes())
