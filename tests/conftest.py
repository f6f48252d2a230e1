from __future__ import annotations

import threading
from types import SimpleNamespace
from typing import Any, AsyncIterator, Callable

import pytest
from botocore.exceptions import ClientError

from s3_stream_storage.storage.models import FileRecord


def client_error(operation: str, code: str = "InternalError") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{operation} failed"}}, operation)


class StubS3Client:
    """In-memory stand-in for a boto3 S3 client."""

    def __init__(self, endpoint_url: str = "http://s3.test") -> None:
        self.meta = SimpleNamespace(endpoint_url=endpoint_url)
        self.objects: dict[tuple[str, str], bytes] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.deleted: list[tuple[str, str]] = []
        self.fail_keys: set[str] = set()
        self.fail_parts: set[int] = set()
        self.fail_delete = False
        self.fail_abort: Exception | None = None
        self._uploads: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _record(self, operation: str, kwargs: dict[str, Any]) -> None:
        with self._lock:
            self.calls.append((operation, kwargs))

    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]

    def put_object(self, **kwargs):
        self._record("put_object", kwargs)
        if kwargs["Key"] in self.fail_keys:
            raise client_error("PutObject")
        self.objects[(kwargs["Bucket"], kwargs["Key"])] = bytes(kwargs["Body"])
        return {"ETag": f'"etag-{kwargs["Key"]}"', "VersionId": f"v-{kwargs['Key']}"}

    def create_multipart_upload(self, **kwargs):
        self._record("create_multipart_upload", kwargs)
        upload_id = f"upload-{len(self._uploads) + 1}"
        self._uploads[upload_id] = {"params": kwargs, "parts": {}}
        return {"UploadId": upload_id, "Bucket": kwargs["Bucket"], "Key": kwargs["Key"]}

    def upload_part(self, **kwargs):
        self._record("upload_part", kwargs)
        if kwargs["PartNumber"] in self.fail_parts:
            raise client_error("UploadPart")
        upload = self._uploads[kwargs["UploadId"]]
        upload["parts"][kwargs["PartNumber"]] = bytes(kwargs["Body"])
        return {"ETag": f'"part-{kwargs["PartNumber"]}"'}

    def complete_multipart_upload(self, **kwargs):
        self._record("complete_multipart_upload", kwargs)
        upload = self._uploads.pop(kwargs["UploadId"])
        numbers = [part["PartNumber"] for part in kwargs["MultipartUpload"]["Parts"]]
        body = b"".join(upload["parts"][number] for number in numbers)
        self.objects[(kwargs["Bucket"], kwargs["Key"])] = body
        return {
            "Location": f"https://{kwargs['Bucket']}.s3.test/{kwargs['Key']}",
            "ETag": f'"multipart-{len(numbers)}"',
            "VersionId": "v-multipart",
        }

    def abort_multipart_upload(self, **kwargs):
        self._record("abort_multipart_upload", kwargs)
        if self.fail_abort is not None:
            raise self.fail_abort
        self._uploads.pop(kwargs["UploadId"], None)
        return {}

    def delete_object(self, **kwargs):
        self._record("delete_object", kwargs)
        if self.fail_delete:
            raise client_error("DeleteObject", code="AccessDenied")
        with self._lock:
            self.deleted.append((kwargs["Bucket"], kwargs["Key"]))
        self.objects.pop((kwargs["Bucket"], kwargs["Key"]), None)
        return {"DeleteMarker": True, "VersionId": "v-delete", "ResponseMetadata": {"HTTPStatusCode": 204}}


async def _chunks(data: bytes, chunk_size: int) -> AsyncIterator[bytes]:
    for start in range(0, len(data), chunk_size):
        yield data[start:start + chunk_size]


@pytest.fixture()
def s3_stub() -> StubS3Client:
    return StubS3Client()


@pytest.fixture()
def make_file() -> Callable[..., FileRecord]:
    def factory(
        data: bytes = b"hello world",
        *,
        chunk_size: int = 4,
        originalname: str = "hello.txt",
        mimetype: str = "text/plain",
    ) -> FileRecord:
        return FileRecord(
            fieldname="file",
            originalname=originalname,
            mimetype=mimetype,
            stream=_chunks(data, chunk_size),
        )

    return factory


@pytest.fixture()
def chunks() -> Callable[[bytes, int], AsyncIterator[bytes]]:
    return _chunks
