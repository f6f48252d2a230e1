"""
Streaming S3 storage engine for file uploads.
Resolves per-file settings and writes each file to S3, optionally as several transformed objects.
"""

import logging

from s3_stream_storage.core.config import settings
from s3_stream_storage.core.errors import (
    ConfigurationError,
    ResolutionError,
    StorageError,
    TransferError,
)
from s3_stream_storage.s3.client import S3Client, UploadOutcome, create_s3_client
from s3_stream_storage.schemas import TransformResult, TransformUploadResult, UploadResult
from s3_stream_storage.storage.engine import S3Storage, s3_storage
from s3_stream_storage.storage.models import FileRecord, ResolvedConfig, TransformSpec
from s3_stream_storage.storage.resolvers import (
    AUTO_CONTENT_TYPE,
    DEFAULT_CONTENT_TYPE,
    FILENAME_CONTENT_TYPE,
    Resolver,
    StaticValue,
)

__version__ = "0.1.0"

_logger = logging.getLogger(__name__)
_logger.setLevel(settings.LOG_LEVEL.upper())
_logger.addHandler(logging.NullHandler())

__all__ = [
    "AUTO_CONTENT_TYPE",
    "DEFAULT_CONTENT_TYPE",
    "FILENAME_CONTENT_TYPE",
    "ConfigurationError",
    "FileRecord",
    "ResolutionError",
    "ResolvedConfig",
    "Resolver",
    "S3Client",
    "S3Storage",
    "StaticValue",
    "StorageError",
    "TransferError",
    "TransformResult",
    "TransformSpec",
    "TransformUploadResult",
    "UploadOutcome",
    "UploadResult",
    "create_s3_client",
    "s3_storage",
]
