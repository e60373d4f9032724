"""Core models for request/response handling."""

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path


class BodyType(StrEnum):
    """Body content type classification for request parsing."""

    PYDANTIC = "pydantic"
    JSONABLE = "jsonable"
    FORM = "form"


@dataclass(frozen=True, slots=True, kw_only=True)
class UploadedFile:
    """A file part that a storage engine finished handling."""

    original_filename: str
    field_name: str
    mime_type: str = "text/plain"
    encoding: str = "7bit"


@dataclass(frozen=True, slots=True, kw_only=True)
class MemoryStorageFile(UploadedFile):
    """File buffered fully in memory."""

    contents: bytes

    @property
    def size(self) -> int:
        return len(self.contents)


@dataclass(frozen=True, slots=True, kw_only=True)
class DiskStorageFile(UploadedFile):
    """File written to a generated path on disk."""

    size: int
    path: Path
    filename: str


class FormData(dict):
    """Parsed multipart fields, nested according to bracket notation."""


class UploadFile:
    """Container for uploaded files from multipart/form-data requests."""

    __slots__ = ("files",)

    def __init__(self, files: list[UploadedFile] | None = None) -> None:
        self.files = list(files or [])

    def __bool__(self) -> bool:
        return bool(self.files)

    def __len__(self) -> int:
        return len(self.files)

    def __iter__(self):
        return iter(self.files)

    def get(self, field_name: str) -> UploadedFile | None:
        """Get the first file uploaded under a field name."""
        return next((f for f in self.files if f.field_name == field_name), None)

    def getlist(self, field_name: str) -> list[UploadedFile]:
        """Get every file uploaded under a field name."""
        return [f for f in self.files if f.field_name == field_name]

    def keys(self) -> list[str]:
        """Get all file field names, in upload completion order."""
        return list(dict.fromkeys(f.field_name for f in self.files))
