"""
Storage data models.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterable, AsyncIterator, Dict, Optional, Union

if TYPE_CHECKING:
    from s3_stream_storage.storage.resolvers import Resolver


@dataclass
class FileRecord:
    """One inbound file as handed over by the upload middleware."""
    fieldname: str
    originalname: str
    mimetype: str
    stream: AsyncIterable[bytes]
    encoding: Optional[str] = None


@dataclass(frozen=True)
class TransformSpec:
    """A derived upload: its own key and its own byte pipeline."""
    id: Union[str, int]
    key: "Resolver"
    transform: Any  # (request, file) -> pipe, pipe(AsyncIterable[bytes]) -> AsyncIterable[bytes]


@dataclass
class ResolvedConfig:
    """Concrete attribute values for a single upload attempt."""
    bucket: str
    key: str
    acl: Optional[str]
    metadata: Optional[Dict[str, str]]
    cache_control: Optional[str]
    should_transform: bool
    content_disposition: Optional[str]
    storage_class: Optional[str]
    content_type: str
    replacement_stream: Optional[AsyncIterator[bytes]]
    server_side_encryption: Optional[str]
    sse_kms_key_id: Optional[str]
    content_encoding: Optional[str]

    def body(self, file: FileRecord) -> AsyncIterable[bytes]:
        """Pick the stream the uploader must read."""
        if self.replacement_stream is not None:
            return self.replacement_stream
        return file.stream
