"""Core storage - artifact storage abstraction."""

from core.storage.artifacts import (
    put_json,
    get_json,
    read_json_file,
    file_md5,
    compute_md5,
)

__all__ = [
    "put_json",
    "get_json",
    "read_json_file",
    "file_md5",
    "compute_md5",
]
