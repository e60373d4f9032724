"""Storage engine that streams uploaded files to disk."""

import inspect
import os
import secrets
from collections.abc import Awaitable, Callable
from pathlib import Path

import aiofiles

from robyn_multipart.core.exceptions import ConfigurationError
from robyn_multipart.core.logger import LogIcon, logger
from robyn_multipart.models.core import DiskStorageFile
from robyn_multipart.storage.base import HandleFile, StorageEngine

PathGenerator = Callable[[HandleFile], Awaitable[str | os.PathLike] | str | os.PathLike]


async def random_filename(file: HandleFile) -> str:
    """Return 16 random hex characters."""
    return secrets.token_hex(8)


async def _resolve(generator: PathGenerator, file: HandleFile) -> str | os.PathLike:
    result = generator(file)
    if inspect.isawaitable(result):
        result = await result
    return result


class DiskStorage(StorageEngine):
    """Writes each file to ``<destination>/<filename>``.

    Exactly one of ``destination`` or ``destination_generator`` must be given.
    Partially written files are left in place when the upload fails.
    """

    def __init__(
        self,
        destination: str | os.PathLike | None = None,
        destination_generator: PathGenerator | None = None,
        filename_generator: PathGenerator | None = None,
    ) -> None:
        if (destination is None) == (destination_generator is None):
            raise ConfigurationError("DiskStorage needs exactly one of destination or destination_generator")
        if destination is not None and not isinstance(destination, (str, os.PathLike)):
            raise ConfigurationError("destination must be a string or path")
        if destination_generator is not None and not callable(destination_generator):
            raise ConfigurationError("destination_generator must be callable")
        if filename_generator is not None and not callable(filename_generator):
            raise ConfigurationError("filename_generator must be callable")

        self.destination = Path(destination) if destination is not None else None
        self.destination_generator = destination_generator
        self.filename_generator = filename_generator or random_filename

    async def get_destination(self, file: HandleFile) -> Path:
        if self.destination is not None:
            return self.destination
        return Path(await _resolve(self.destination_generator, file))

    async def handle_file(self, file: HandleFile) -> DiskStorageFile:
        filename = str(await _resolve(self.filename_generator, file))
        full_path = await self.get_destination(file) / filename

        written = 0
        async with aiofiles.open(full_path, "wb") as out:
            async for chunk in file.stream:
                written += await out.write(chunk)

        logger.debug("File written to disk", icon=LogIcon.DISK, path=str(full_path), size=written)
        return DiskStorageFile(
            original_filename=file.filename,
            field_name=file.field_name,
            mime_type=file.mime_type,
            encoding=file.encoding,
            size=written,
            path=full_path,
            filename=filename,
        )
