"""Exceptions raised by the persistent stores.

Comparison problems (unparseable output, a failing tool call) are never
raised: they become differences on the result. Only storage-format problems
are fatal, because the stored baseline can no longer be trusted.
"""

from pathlib import Path
from typing import Union


class GoldenStoreError(Exception):
    """Base exception for store load/save errors.

    Attributes:
        message: Human-readable error description
        store_path: File the error relates to
    """

    def __init__(self, message: str, store_path: Union[str, Path]):
        self.message = message
        self.store_path = Path(store_path)
        super().__init__(message)


class StoreCorruptedError(GoldenStoreError):
    """Raised when a store file exists but is not valid JSON or fails validation."""

    def __init__(self, store_path: Union[str, Path], reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Invalid store file {store_path}{detail}", store_path)
        self.reason = reason


class StoreVersionMismatchError(GoldenStoreError):
    """Raised when a store was written by a newer, unsupported format version."""

    def __init__(self, store_path: Union[str, Path], found_version: int, supported_version: int):
        super().__init__(
            f"Golden store version {found_version} is newer than supported "
            f"version {supported_version} ({store_path})",
            store_path,
        )
        self.found_version = found_version
        self.supported_version = supported_version
