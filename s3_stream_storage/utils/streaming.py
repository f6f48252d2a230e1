"""
Streaming utilities.
Async byte-stream adapters sitting between inbound uploads and S3.
"""

import asyncio
import logging
from typing import AsyncIterable, AsyncIterator, List, Optional, Tuple

from s3_stream_storage.core.errors import TransferError
from s3_stream_storage.s3.config import MAX_BUFFERED_CHUNKS

logger = logging.getLogger(__name__)

_END = object()


class _Failure:
    """Carries a source error through the branch queues."""

    def __init__(self, error: Exception):
        self.error = error


async def _empty() -> AsyncIterator[bytes]:
    return
    yield


async def _splice(first_chunk: bytes, iterator: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    yield first_chunk
    async for chunk in iterator:
        yield chunk


async def peek_first_chunk(
    stream: AsyncIterable[bytes]
) -> Tuple[Optional[bytes], AsyncIterator[bytes]]:
    """
    Read exactly one chunk and hand back a stream that still yields everything.

    The original stream must not be read by anyone else afterwards: the
    returned replacement owns it.

    Args:
        stream: Async byte stream to inspect

    Returns:
        (first chunk or None if the stream was empty, replacement stream)
    """
    iterator = aiter(stream)
    try:
        first_chunk = await anext(iterator)
    except StopAsyncIteration:
        return None, _empty()
    return first_chunk, _splice(first_chunk, iterator)


class StreamTee:
    """
    Split one async byte stream into independent branches.

    One producer task reads the source and feeds a bounded queue per branch,
    so the slowest branch sets the pace of the source (backpressure).
    The producer starts when the first branch is iterated. A branch that is
    closed or detached stops receiving chunks and never blocks its siblings.
    """

    def __init__(
        self,
        source: AsyncIterable[bytes],
        branches: int,
        max_buffered_chunks: int = MAX_BUFFERED_CHUNKS
    ):
        self.source = source
        self.queues: List[asyncio.Queue] = [
            asyncio.Queue(maxsize=max_buffered_chunks) for _ in range(branches)
        ]
        self.detached = [False] * branches
        self.total_bytes = 0
        self._producer_task: Optional[asyncio.Task] = None

    def branches(self) -> List[AsyncIterator[bytes]]:
        return [self._branch(index) for index in range(len(self.queues))]

    def detach(self, index: int) -> None:
        """Stop feeding a branch and release anything waiting on its queue."""
        if self.detached[index]:
            return
        self.detached[index] = True
        queue = self.queues[index]
        while not queue.empty():
            queue.get_nowait()

    def _ensure_started(self) -> None:
        if self._producer_task is None:
            self._producer_task = asyncio.get_event_loop().create_task(self._produce())

    async def _produce(self):
        """Background coroutine reading the source into every live branch."""
        marker = _END
        try:
            async for chunk in self.source:
                self.total_bytes += len(chunk)
                for index, queue in enumerate(self.queues):
                    if not self.detached[index]:
                        await queue.put(chunk)
                if all(self.detached):
                    logger.debug("[STREAM TEE] All branches detached, stopping source read")
                    return
        except Exception as e:
            logger.error(f"[STREAM TEE] Error in producer: {e}")
            marker = _Failure(e)

        for index, queue in enumerate(self.queues):
            if not self.detached[index]:
                await queue.put(marker)

    async def _branch(self, index: int) -> AsyncIterator[bytes]:
        self._ensure_started()
        queue = self.queues[index]
        try:
            while True:
                item = await queue.get()
                if item is _END:
                    return
                if isinstance(item, _Failure):
                    raise item.error
                yield item
        finally:
            self.detach(index)


class PartBuffer:
    """
    Regroup an async chunk stream into fixed-size parts for multipart upload.

    Every part except the last is exactly part_size bytes.
    """

    def __init__(self, stream: AsyncIterable[bytes], part_size: int):
        if not hasattr(stream, "__aiter__"):
            raise TransferError(
                f"Expected an async byte stream, got {type(stream).__name__}"
            )
        self._iterator = aiter(stream)
        self.part_size = part_size
        self.buffer = bytearray()
        self.finished = False
        self.total_bytes = 0

    @property
    def exhausted(self) -> bool:
        return self.finished and not self.buffer

    async def read_part(self) -> bytes:
        """
        Return the next part.

        Returns:
            Up to part_size bytes; b"" once the stream is exhausted
        """
        while not self.finished and len(self.buffer) < self.part_size:
            try:
                chunk = await anext(self._iterator)
            except StopAsyncIteration:
                self.finished = True
                break
            if not isinstance(chunk, (bytes, bytearray, memoryview)):
                raise TransferError(
                    f"Expected bytes from upload body, got {type(chunk).__name__}"
                )
            self.buffer.extend(chunk)

        data = bytes(self.buffer[:self.part_size])
        del self.buffer[:self.part_size]
        self.total_bytes += len(data)
        return data
