from __future__ import annotations

from typing import Any, Mapping


class StorageError(Exception):
    code = "storage_error"

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(StorageError, TypeError):
    """Raised while constructing a storage engine from unsupported options."""

    code = "configuration_error"


class ResolutionError(StorageError):
    """Raised when a resolver hands back a value the engine cannot use."""

    code = "resolution_error"


class TransferError(StorageError):
    code = "transfer_error"
