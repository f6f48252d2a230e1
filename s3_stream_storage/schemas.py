"""
Upload result schemas.
Type-safe records returned to the upload middleware.
"""

from typing import Dict, List, Optional, Union

from pydantic import BaseModel


class UploadResult(BaseModel):
    """Outcome of a single-object upload."""
    size: int
    bucket: str
    key: str
    acl: Optional[str] = None
    content_type: str
    content_disposition: Optional[str] = None
    storage_class: Optional[str] = None
    server_side_encryption: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    location: str
    etag: Optional[str] = None
    version_id: Optional[str] = None


class TransformResult(UploadResult):
    """Outcome of one transformed upload."""
    id: Union[str, int]


class TransformUploadResult(BaseModel):
    """Outcome of a transforming upload, in transform declaration order."""
    transforms: List[TransformResult]
