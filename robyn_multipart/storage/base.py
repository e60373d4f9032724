"""Storage engine contract."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from robyn_multipart.core.streams import FileStream
from robyn_multipart.models.core import UploadedFile

if TYPE_CHECKING:
    from robyn_multipart.core.context import RequestContext


@dataclass(frozen=True, slots=True)
class HandleFile:
    """Everything a storage engine gets to know about one file part."""

    stream: FileStream
    filename: str
    field_name: str
    ctx: "RequestContext"
    encoding: str
    mime_type: str


class StorageEngine(ABC):
    """Persists the bytes of one uploaded file and describes the result."""

    @abstractmethod
    async def handle_file(self, file: HandleFile) -> UploadedFile:
        """Consume ``file.stream`` fully and return the stored file's metadata."""
        ...
