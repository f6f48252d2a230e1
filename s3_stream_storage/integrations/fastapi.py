"""
FastAPI bridge.
Turns an already-parsed multipart upload into the FileRecord the storage engine consumes.
"""

from typing import AsyncIterator

from fastapi import UploadFile

from s3_stream_storage.s3.config import READ_CHUNK_SIZE
from s3_stream_storage.storage.models import FileRecord
from s3_stream_storage.utils.content_type import DEFAULT_MIME_TYPE


def file_record_from_upload(
    upload: UploadFile,
    fieldname: str = "file",
    chunk_size: int = READ_CHUNK_SIZE
) -> FileRecord:
    """
    Adapt a FastAPI UploadFile.

    Args:
        upload: Parsed upload from a multipart form
        fieldname: Form field the file came from
        chunk_size: Bytes per chunk read from the spooled file

    Returns:
        FileRecord streaming the upload contents
    """
    async def chunk_iterator() -> AsyncIterator[bytes]:
        while True:
            chunk = await upload.read(chunk_size)
            if not chunk:
                break
            yield chunk

    return FileRecord(
        fieldname=fieldname,
        originalname=upload.filename or "",
        mimetype=upload.content_type or DEFAULT_MIME_TYPE,
        stream=chunk_iterator()
    )
