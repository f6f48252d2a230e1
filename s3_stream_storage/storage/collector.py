"""
Per-file configuration collection.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from s3_stream_storage.core.errors import ResolutionError
from s3_stream_storage.storage.models import FileRecord, ResolvedConfig

if TYPE_CHECKING:
    from s3_stream_storage.storage.engine import S3Storage

logger = logging.getLogger(__name__)


def require_name(field: str, value: Any) -> str:
    """Check that a resolved bucket or key is a non-empty str."""
    if not isinstance(value, str) or not value:
        raise ResolutionError(f"{field} must resolve to a non-empty str, got {value!r}")
    return value


async def collect(storage: "S3Storage", request: Any, file: FileRecord) -> ResolvedConfig:
    """
    Resolve every upload attribute for one file.

    The field resolvers run concurrently; the first failure propagates
    immediately and the others are left to finish on their own. Content type
    is resolved only after all of them succeed because it may consume the
    file stream.

    Args:
        storage: Storage engine holding the resolvers
        request: Opaque request context passed to every resolver
        file: Inbound file

    Returns:
        ResolvedConfig for this upload

    Raises:
        ResolutionError: If bucket or key resolve to something unusable
    """
    (
        bucket,
        key,
        acl,
        metadata,
        cache_control,
        should_transform,
        content_disposition,
        storage_class,
        server_side_encryption,
        sse_kms_key_id,
        content_encoding,
    ) = await asyncio.gather(
        storage.get_bucket.resolve(request, file),
        storage.get_key.resolve(request, file),
        storage.get_acl.resolve(request, file),
        storage.get_metadata.resolve(request, file),
        storage.get_cache_control.resolve(request, file),
        storage.get_should_transform.resolve(request, file),
        storage.get_content_disposition.resolve(request, file),
        storage.get_storage_class.resolve(request, file),
        storage.get_sse.resolve(request, file),
        storage.get_sse_kms_key_id.resolve(request, file),
        storage.get_content_encoding.resolve(request, file),
    )

    require_name("bucket", bucket)
    require_name("key", key)

    content_type, replacement_stream = await storage.get_content_type.resolve(request, file)

    logger.debug(f"[COLLECT] Resolved {bucket}/{key} ({content_type}, transform={bool(should_transform)})")

    return ResolvedConfig(
        bucket=bucket,
        key=key,
        acl=acl,
        metadata=metadata,
        cache_control=cache_control,
        should_transform=bool(should_transform),
        content_disposition=content_disposition,
        storage_class=storage_class,
        content_type=content_type,
        replacement_stream=replacement_stream,
        server_side_encryption=server_side_encryption,
        sse_kms_key_id=sse_kms_key_id,
        content_encoding=content_encoding,
    )
