"""Readable byte stream for a single uploaded file part."""

import asyncio
from collections.abc import AsyncIterator

from robyn_multipart.core.settings import settings as st


class FileStream:
    """Async byte stream fed synchronously by the parser and consumed by a storage engine.

    The producer side (``feed``, ``feed_eof``, ``set_exception``) never blocks.
    Once an exception is set the next read raises it.
    """

    def __init__(self, chunk_size: int | None = None) -> None:
        self._reader = asyncio.StreamReader()
        self._chunk_size = chunk_size or st.MULTIPART_CHUNK_SIZE
        self._discarded = False
        self._closed = False
        self.bytes_received = 0

    @property
    def discarded(self) -> bool:
        return self._discarded

    @property
    def at_eof(self) -> bool:
        return self._reader.at_eof()

    def feed(self, data: bytes) -> None:
        if self._closed or not data:
            return
        self.bytes_received += len(data)
        if self._discarded:
            return
        self._reader.feed_data(data)

    def feed_eof(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._reader.feed_eof()

    def set_exception(self, exc: BaseException) -> None:
        if self._closed:
            return
        self._closed = True
        self._reader.set_exception(exc)

    def resume(self) -> None:
        """Drop buffered and future data; readers see end of stream."""
        if self._discarded:
            return
        self._discarded = True
        self._reader = asyncio.StreamReader()
        self._reader.feed_eof()

    async def read(self, n: int = -1) -> bytes:
        return await self._reader.read(n)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while chunk := await self._reader.read(self._chunk_size):
            yield chunk

    def __repr__(self) -> str:
        return f"FileStream(bytes_received={self.bytes_received}, discarded={self._discarded})"
