"""
S3 Upload Configuration.
Constants for multipart upload and streaming settings.
"""

from s3_stream_storage.core.config import settings

# Multipart Upload Settings
MIN_PART_SIZE = 5 * 1024 * 1024          # 5MB (S3/MinIO minimum for every part but the last)
MULTIPART_CHUNKSIZE = max(settings.MULTIPART_CHUNKSIZE, MIN_PART_SIZE)
MAX_WORKERS = max(settings.UPLOAD_MAX_WORKERS, 1)

# Streaming Settings
READ_CHUNK_SIZE = settings.READ_CHUNK_SIZE

# Maximum buffered chunks per transform branch (controls backpressure and memory usage)
# Default: 10 chunks; the slowest branch gates how fast the source is read
MAX_BUFFERED_CHUNKS = max(settings.MAX_BUFFERED_CHUNKS, 1)
