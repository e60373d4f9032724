"""Storage engine that keeps uploaded files in memory."""

from robyn_multipart.models.core import MemoryStorageFile
from robyn_multipart.storage.base import HandleFile, StorageEngine
from robyn_multipart.storage.sink import ConcatSink


class MemoryStorage(StorageEngine):
    """Buffers each file completely. Memory use is proportional to upload size."""

    async def handle_file(self, file: HandleFile) -> MemoryStorageFile:
        sink = ConcatSink()
        async for chunk in file.stream:
            sink.write(chunk)
        return MemoryStorageFile(
            original_filename=file.filename,
            field_name=file.field_name,
            mime_type=file.mime_type,
            encoding=file.encoding,
            contents=sink.getvalue(),
        )
