"""
S3 Client wrapper.
Streams async byte bodies into S3 objects and deletes stored objects.
"""

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, AsyncIterable, Callable, Dict, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

from s3_stream_storage.s3.config import MAX_WORKERS, MULTIPART_CHUNKSIZE
from s3_stream_storage.utils.streaming import PartBuffer

logger = logging.getLogger(__name__)


@dataclass
class UploadOutcome:
    """What S3 reports back for a finished upload."""
    location: str
    etag: Optional[str] = None
    version_id: Optional[str] = None


class S3Client:
    """
    Wrapper for streamed S3 writes and deletes.

    Blocking boto3 calls run in a dedicated executor, one request at a time
    per upload, with the request body already in memory. Reading the body
    stream always happens on the event loop, so a slow stream never pins a
    worker thread.
    """

    def __init__(
        self,
        client: Any,
        part_size: int = MULTIPART_CHUNKSIZE,
        max_workers: int = MAX_WORKERS
    ):
        """
        Args:
            client: boto3 S3 client
            part_size: Multipart part size in bytes
            max_workers: Threads available for boto3 calls
        """
        self.client = client
        self.part_size = part_size
        self.endpoint_url = getattr(getattr(client, "meta", None), "endpoint_url", None) or ""
        self.upload_executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="s3-upload")

    async def _call(self, method: Callable, **kwargs) -> Dict[str, Any]:
        return await asyncio.get_event_loop().run_in_executor(
            self.upload_executor,
            functools.partial(method, **kwargs)
        )

    async def upload_stream(
        self,
        params: Dict[str, Any],
        body: AsyncIterable[bytes],
        progress_callback: Optional[Callable[[int], None]] = None
    ) -> UploadOutcome:
        """
        Upload an async byte stream as one S3 object.

        Bodies that fit in a single part go through put_object; larger ones
        use a serial multipart upload driven here instead of boto3's managed
        upload_fileobj transfer, so parts are read on the event loop and the
        final ETag and VersionId come back. The multipart upload is aborted
        if any step fails or the upload task is cancelled.

        Args:
            params: S3 request parameters (Bucket, Key, ACL, ContentType, ...);
                None values are dropped
            body: Async iterator yielding file chunks
            progress_callback: Called with the cumulative bytes sent after each request

        Returns:
            UploadOutcome with location, ETag and version id

        Raises:
            ClientError: If S3 rejects a request
            TransferError: If the body is not an async byte stream
        """
        params = {name: value for name, value in params.items() if value is not None}
        bucket = params["Bucket"]
        key = params["Key"]

        parts = PartBuffer(body, self.part_size)
        loaded = 0

        def report(amount: int):
            nonlocal loaded
            loaded += amount
            if progress_callback:
                progress_callback(loaded)

        first_part = await parts.read_part()

        if parts.exhausted:
            try:
                response = await self._call(self.client.put_object, Body=first_part, **params)
            except Exception as e:
                logger.error(f"[S3 UPLOAD] put_object failed: {bucket}/{key} :: {e}")
                raise
            report(len(first_part))
            logger.info(f"[S3 UPLOAD] Completed: {bucket}/{key} ({loaded} bytes)")
            return UploadOutcome(
                location=self._get_object_url(bucket, key),
                etag=response.get("ETag"),
                version_id=response.get("VersionId")
            )

        upload = await self._call(self.client.create_multipart_upload, **params)
        upload_id = upload["UploadId"]
        logger.info(f"[S3 UPLOAD] Multipart started: {bucket}/{key} ({upload_id})")

        try:
            completed = []
            part = first_part
            while part:
                part_number = len(completed) + 1
                response = await self._call(
                    self.client.upload_part,
                    Bucket=bucket,
                    Key=key,
                    UploadId=upload_id,
                    PartNumber=part_number,
                    Body=part
                )
                completed.append({"ETag": response["ETag"], "PartNumber": part_number})
                report(len(part))
                logger.debug(f"[S3 UPLOAD] Part {part_number} sent: {bucket}/{key} ({loaded} bytes so far)")
                part = await parts.read_part()

            response = await self._call(
                self.client.complete_multipart_upload,
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": completed}
            )
        except BaseException as e:
            logger.error(f"[S3 UPLOAD] Multipart failed: {bucket}/{key} :: {e}")
            await self._abort(bucket, key, upload_id)
            raise

        logger.info(f"[S3 UPLOAD] Completed: {bucket}/{key} ({loaded} bytes in {len(completed)} parts)")
        return UploadOutcome(
            location=response.get("Location") or self._get_object_url(bucket, key),
            etag=response.get("ETag"),
            version_id=response.get("VersionId")
        )

    async def _abort(self, bucket: str, key: str, upload_id: str) -> None:
        try:
            await self._call(
                self.client.abort_multipart_upload,
                Bucket=bucket,
                Key=key,
                UploadId=upload_id
            )
            logger.info(f"[S3 UPLOAD] Aborted multipart upload: {bucket}/{key} ({upload_id})")
        except Exception as abort_error:
            # The upload error is what the caller needs to see
            logger.error(f"[S3 UPLOAD] Failed to abort {bucket}/{key} ({upload_id}): {abort_error}")

    async def delete_object(self, bucket: str, key: str) -> Dict[str, Any]:
        """
        Delete an object from S3.

        Args:
            bucket: Bucket name
            key: Object key

        Returns:
            The S3 DeleteObject response

        Raises:
            ClientError: If deletion fails
        """
        try:
            response = await self._call(self.client.delete_object, Bucket=bucket, Key=key)
        except ClientError as e:
            logger.error(f"Failed to delete {bucket}/{key}: {e}")
            raise

        logger.info(f"Deleted file: {bucket}/{key}")
        return response

    def _get_object_url(self, bucket: str, key: str) -> str:
        """Construct direct URL to an object."""
        return f"{self.endpoint_url}/{bucket}/{key}"


def create_s3_client(
    endpoint_url: Optional[str] = None,
    access_key: Optional[str] = None,
    secret_key: Optional[str] = None,
    region_name: str = "us-east-1",
    secure: bool = True
) -> S3Client:
    """
    Build an S3Client around a fresh boto3 client.

    Args:
        endpoint_url: S3/MinIO endpoint; a bare host gets a scheme from `secure`
        access_key: Access key id (falls back to the boto3 credential chain)
        secret_key: Secret access key
        region_name: Region name
        secure: Use https for bare hosts

    Returns:
        S3Client instance
    """
    if endpoint_url and not endpoint_url.startswith(("http://", "https://")):
        protocol = "https" if secure else "http"
        endpoint_url = f"{protocol}://{endpoint_url}"

    client = boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        config=Config(signature_version="s3v4"),
        region_name=region_name
    )
    logger.info(f"S3 client initialized with endpoint: {client.meta.endpoint_url}")
    return S3Client(client)
