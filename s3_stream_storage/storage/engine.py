"""
S3 storage engine.

Resolves per-file upload settings, streams the file to S3 as one object or
as one object per transform, and removes stored objects again.
"""

import asyncio
import inspect
import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Union

from s3_stream_storage.core.errors import ConfigurationError, TransferError
from s3_stream_storage.s3.client import S3Client, UploadOutcome
from s3_stream_storage.schemas import TransformResult, TransformUploadResult, UploadResult
from s3_stream_storage.storage import resolvers
from s3_stream_storage.storage.collector import collect, require_name
from s3_stream_storage.storage.models import FileRecord, ResolvedConfig, TransformSpec
from s3_stream_storage.utils.streaming import StreamTee

logger = logging.getLogger(__name__)


def _as_s3_client(s3: Any) -> S3Client:
    if isinstance(s3, S3Client):
        return s3
    if s3 is not None and callable(getattr(s3, "put_object", None)):
        return S3Client(s3)
    raise ConfigurationError("Expected s3 to be an S3 client")


class S3Storage:
    """
    Storage engine turning inbound file streams into S3 objects.

    Every option except s3 and bucket is optional. Options may be literals,
    callables taking (request, file) (sync or async) or Resolver objects.
    All validation happens here; nothing is re-checked per upload, and the
    instance is safe to share between concurrent uploads.
    """

    def __init__(
        self,
        s3: Any = None,
        bucket: Any = None,
        key: Any = None,
        acl: Any = None,
        content_type: Any = None,
        content_disposition: Any = None,
        content_encoding: Any = None,
        metadata: Any = None,
        cache_control: Any = None,
        should_transform: Any = None,
        transforms: Any = None,
        storage_class: Any = None,
        server_side_encryption: Any = None,
        sse_kms_key_id: Any = None,
        rollback_on_failure: bool = False
    ):
        self.s3 = _as_s3_client(s3)

        self.get_bucket = resolvers.as_resolver("bucket", bucket)
        self.get_key = resolvers.as_resolver("key", key, resolvers.DEFAULT_KEY)
        self.get_acl = resolvers.as_resolver("acl", acl, resolvers.DEFAULT_ACL)
        self.get_content_type = resolvers.as_content_type_resolver(content_type)
        self.get_metadata = resolvers.as_resolver(
            "metadata", metadata, resolvers.DEFAULT_METADATA, literal_types=(Mapping,)
        )
        self.get_cache_control = resolvers.as_resolver(
            "cache_control", cache_control, resolvers.DEFAULT_CACHE_CONTROL
        )
        self.get_should_transform = resolvers.as_resolver(
            "should_transform", should_transform, resolvers.DEFAULT_SHOULD_TRANSFORM,
            literal_types=(bool,)
        )
        self.transforms = resolvers.as_transforms(transforms)
        self.get_content_disposition = resolvers.as_resolver(
            "content_disposition", content_disposition, resolvers.DEFAULT_CONTENT_DISPOSITION
        )
        self.get_content_encoding = resolvers.as_resolver(
            "content_encoding", content_encoding, resolvers.DEFAULT_CONTENT_ENCODING
        )
        self.get_storage_class = resolvers.as_resolver(
            "storage_class", storage_class, resolvers.DEFAULT_STORAGE_CLASS
        )
        self.get_sse = resolvers.as_resolver(
            "server_side_encryption", server_side_encryption, resolvers.DEFAULT_SSE
        )
        self.get_sse_kms_key_id = resolvers.as_resolver(
            "sse_kms_key_id", sse_kms_key_id, resolvers.DEFAULT_SSE_KMS_KEY_ID
        )

        if not isinstance(rollback_on_failure, bool):
            raise ConfigurationError("Expected rollback_on_failure to be bool")
        self.rollback_on_failure = rollback_on_failure

    async def handle_file(
        self, request: Any, file: FileRecord
    ) -> Union[UploadResult, TransformUploadResult]:
        """
        Store one inbound file.

        Args:
            request: Opaque request context handed to every resolver
            file: Inbound file with its byte stream

        Returns:
            UploadResult, or TransformUploadResult when the file is transformed

        Raises:
            Whatever a resolver or S3 raised, unchanged
        """
        opts = await collect(self, request, file)

        if not opts.should_transform:
            return await self.direct_upload(opts, file)
        return await self.transform_upload(opts, request, file)

    def _base_params(self, opts: ResolvedConfig, key: str) -> Dict[str, Any]:
        params = {
            "Bucket": opts.bucket,
            "Key": key,
            "ACL": opts.acl,
            "CacheControl": opts.cache_control,
            "ContentType": opts.content_type,
            "Metadata": opts.metadata,
            "StorageClass": opts.storage_class,
            "ServerSideEncryption": opts.server_side_encryption,
            "SSEKMSKeyId": opts.sse_kms_key_id,
        }

        if opts.content_encoding:
            params["ContentEncoding"] = opts.content_encoding

        return params

    def _result_fields(self, opts: ResolvedConfig, key: str, size: int, outcome: UploadOutcome) -> Dict[str, Any]:
        return {
            "size": size,
            "bucket": opts.bucket,
            "key": key,
            "acl": opts.acl,
            "content_type": opts.content_type,
            "content_disposition": opts.content_disposition,
            "storage_class": opts.storage_class,
            "server_side_encryption": opts.server_side_encryption,
            "metadata": opts.metadata,
            "location": outcome.location,
            "etag": outcome.etag,
            "version_id": outcome.version_id,
        }

    async def direct_upload(self, opts: ResolvedConfig, file: FileRecord) -> UploadResult:
        """Upload the file as a single object."""
        current_size = 0

        def progress(total: int):
            nonlocal current_size
            current_size = total

        params = self._base_params(opts, opts.key)
        if opts.content_disposition:
            params["ContentDisposition"] = opts.content_disposition

        outcome = await self.s3.upload_stream(params, opts.body(file), progress_callback=progress)

        return UploadResult(**self._result_fields(opts, opts.key, current_size, outcome))

    async def transform_upload(
        self, opts: ResolvedConfig, request: Any, file: FileRecord
    ) -> TransformUploadResult:
        """
        Upload one derived object per transform.

        All transform keys are resolved first. Then every transform streams
        its own copy of the body through its pipeline concurrently. Results
        keep declaration order; the first failure is raised.
        """
        keys = await asyncio.gather(
            *(transform.key.resolve(request, file) for transform in self.transforms)
        )
        for transform, key in zip(self.transforms, keys):
            require_name(f"transforms[{transform.id!r}].key", key)

        tee = StreamTee(opts.body(file), len(self.transforms))
        branches = tee.branches()

        uploads = [
            self._upload_transform(opts, request, file, transform, key, branches[index], tee, index)
            for index, (transform, key) in enumerate(zip(self.transforms, keys))
        ]

        if not self.rollback_on_failure:
            results = await asyncio.gather(*uploads)
            return TransformUploadResult(transforms=list(results))

        outcomes = await asyncio.gather(*uploads, return_exceptions=True)
        failures = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
        if failures:
            await self._rollback([outcome for outcome in outcomes if isinstance(outcome, TransformResult)])
            raise failures[0]
        return TransformUploadResult(transforms=list(outcomes))

    async def _upload_transform(
        self,
        opts: ResolvedConfig,
        request: Any,
        file: FileRecord,
        transform: TransformSpec,
        key: str,
        branch: Any,
        tee: StreamTee,
        index: int
    ) -> TransformResult:
        current_size = 0

        def progress(total: int):
            nonlocal current_size
            current_size = total

        try:
            pipe = await self._build_pipe(transform, request, file)
            body = pipe(branch)
            if not hasattr(body, "__aiter__"):
                raise TransferError(
                    f"Transform {transform.id!r} produced {type(body).__name__}, expected an async byte stream"
                )

            logger.info(f"[TRANSFORM UPLOAD] Starting transform {transform.id!r}: {opts.bucket}/{key}")
            outcome = await self.s3.upload_stream(
                self._base_params(opts, key), body, progress_callback=progress
            )
        finally:
            # A failed or finished branch must never hold back its siblings
            tee.detach(index)

        return TransformResult(id=transform.id, **self._result_fields(opts, key, current_size, outcome))

    async def _build_pipe(self, transform: TransformSpec, request: Any, file: FileRecord) -> Callable:
        pipe = transform.transform(request, file)
        if inspect.isawaitable(pipe):
            pipe = await pipe
        if not callable(pipe):
            raise TransferError(
                f"Transform {transform.id!r} must provide a callable taking the byte stream"
            )
        return pipe

    async def _rollback(self, written: List[TransformResult]) -> None:
        """Delete transform objects that were written before a sibling failed."""
        logger.warning(f"[TRANSFORM UPLOAD] Rolling back {len(written)} written transform(s)")
        outcomes = await asyncio.gather(
            *(self.s3.delete_object(result.bucket, result.key) for result in written),
            return_exceptions=True
        )
        for result, outcome in zip(written, outcomes):
            if isinstance(outcome, BaseException):
                # The upload failure is re-raised by the caller
                logger.error(
                    f"[TRANSFORM UPLOAD] Rollback failed for {result.bucket}/{result.key}: {outcome}"
                )

    async def remove_file(self, request: Any, file: Any) -> Union[Dict[str, Any], List[Dict[str, Any]]]:
        """
        Delete a previously stored object.

        Args:
            request: Opaque request context
            file: A stored record exposing bucket and key (attributes or mapping
                keys); a TransformUploadResult removes every transform object

        Returns:
            The S3 response, or one response per transform in declaration order

        Raises:
            ClientError: If S3 rejects the delete, unchanged
        """
        if isinstance(file, TransformUploadResult):
            return list(await asyncio.gather(
                *(self.s3.delete_object(result.bucket, result.key) for result in file.transforms)
            ))

        if isinstance(file, Mapping):
            bucket, key = file["bucket"], file["key"]
        else:
            bucket, key = file.bucket, file.key
        return await self.s3.delete_object(bucket, key)


def s3_storage(**options) -> S3Storage:
    """Create an S3Storage engine; see S3Storage for the accepted options."""
    return S3Storage(**options)
