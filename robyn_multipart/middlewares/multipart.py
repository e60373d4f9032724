"""Middleware parsing multipart/form-data bodies into form fields and stored files."""

import asyncio
from contextlib import aclosing, suppress
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from robyn_multipart.core.context import RequestContext
from robyn_multipart.core.counter import PendingCounter
from robyn_multipart.core.exceptions import ConfigurationError, StorageError
from robyn_multipart.core.fields import append_field
from robyn_multipart.core.logger import LogIcon, logger
from robyn_multipart.core.parser import (
    ErrorEvent,
    FieldEvent,
    FileEvent,
    FinishEvent,
    ParserLimits,
    iter_events,
)
from robyn_multipart.core.settings import settings as st
from robyn_multipart.middlewares.base import BaseMiddleware, Endpoint
from robyn_multipart.models.core import UploadedFile
from robyn_multipart.storage.base import HandleFile, StorageEngine


class UploadState(StrEnum):
    """Lifecycle of one multipart request."""

    RECEIVING = "receiving"
    FINALIZING = "finalizing"
    PROCEEDED = "proceeded"
    FAILED = "failed"


@dataclass
class MultipartOptions:
    """Per-middleware configuration, validated on construction."""

    storage_engine: StorageEngine | None = None
    max_file_size: int = field(default_factory=lambda: st.MULTIPART_MAX_FILE_SIZE)
    max_num_files: int = field(default_factory=lambda: st.MULTIPART_MAX_NUM_FILES)

    def __post_init__(self) -> None:
        if self.storage_engine is None:
            raise ConfigurationError("a storage engine must be provided")
        if not callable(getattr(self.storage_engine, "handle_file", None)):
            raise ConfigurationError("storage engine must implement handle_file")
        if self.max_file_size < 1:
            raise ConfigurationError("max_file_size must be positive")
        if self.max_num_files < 0:
            raise ConfigurationError("max_num_files cannot be negative")

    @property
    def limits(self) -> ParserLimits:
        return ParserLimits(max_file_size=self.max_file_size, max_num_files=self.max_num_files)


class MultipartUpload:
    """Consumes one multipart body, dispatching each file to the storage engine.

    :meth:`run` returns once the parser finished and every dispatched storage
    operation succeeded, after merging the fields into ``ctx.body`` and attaching
    the files to ``ctx.files``. On failure it raises the first error seen, but only
    after every in-flight storage operation has settled.
    """

    def __init__(self, ctx: RequestContext, options: MultipartOptions) -> None:
        self.ctx = ctx
        self.options = options
        self.fields: dict[str, Any] = {}
        self.files: list[UploadedFile] = []
        self.pending = PendingCounter()
        self.parser_finished = False
        self.errored = False
        self.state = UploadState.RECEIVING
        self.error: BaseException | None = None
        self._outcome: asyncio.Future[None] | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def terminal(self) -> bool:
        return self.state in (UploadState.PROCEEDED, UploadState.FAILED)

    async def run(self) -> None:
        self._outcome = asyncio.get_running_loop().create_future()
        pump = asyncio.create_task(self._pump())
        try:
            await self._outcome
        finally:
            if not pump.done():
                pump.cancel()
                with suppress(asyncio.CancelledError):
                    await pump

    async def _pump(self) -> None:
        events = iter_events(self.ctx.stream, self.ctx.content_type, self.options.limits)
        try:
            async with aclosing(events):
                async for event in events:
                    if self.terminal:
                        return
                    match event:
                        case FieldEvent(name=name, value=value):
                            append_field(self.fields, name, value)
                        case FileEvent():
                            self._on_file(event)
                        case FinishEvent():
                            self.parser_finished = True
                            self.state = UploadState.FINALIZING
                            self._check_done()
                        case ErrorEvent(error=error):
                            self._error_out(error)
        except Exception as ex:
            self._error_out(ex)

    def _on_file(self, event: FileEvent) -> None:
        if self.errored:
            logger.debug("Discarding file after error", icon=LogIcon.DISCARD, field=event.field_name)
            event.stream.resume()
            return

        self.pending.increment()
        descriptor = HandleFile(
            stream=event.stream,
            filename=event.filename,
            field_name=event.field_name,
            ctx=self.ctx,
            encoding=event.encoding,
            mime_type=event.mime_type,
        )
        task = asyncio.create_task(self._store(descriptor))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _store(self, descriptor: HandleFile) -> None:
        engine = self.options.storage_engine
        try:
            result = await engine.handle_file(descriptor)
            if not isinstance(result, UploadedFile):
                raise StorageError(
                    f"{type(engine).__name__}.handle_file returned {type(result).__name__}, expected UploadedFile"
                )
        except Exception as ex:
            self.pending.decrement()
            self._error_out(ex)
            return

        if not self.errored:
            self.files.append(result)
            logger.debug(
                "File stored",
                icon=LogIcon.FILE,
                field=result.field_name,
                filename=result.original_filename,
            )
        self.pending.decrement()
        self._check_done()

    def _check_done(self) -> None:
        if self.parser_finished and self.pending.value == 0 and not self.errored:
            self._done()

    def _done(self) -> None:
        if self.terminal:
            return
        self.state = UploadState.PROCEEDED
        if self.ctx.body is None:
            self.ctx.body = {}
        self.ctx.body.update(self.fields)
        self.ctx.files = self.files
        logger.info(
            "Multipart body received",
            icon=LogIcon.SUCCESS,
            path=self.ctx.path,
            files=len(self.files),
            fields=len(self.fields),
        )
        self._outcome.set_result(None)

    def _error_out(self, error: BaseException) -> None:
        if self.terminal:
            return
        if self.errored:
            logger.debug("Ignoring subsequent multipart error", icon=LogIcon.WARNING, error=repr(error))
            return
        self.errored = True
        self.error = error
        self.state = UploadState.FINALIZING
        logger.warning(
            "Multipart upload failed",
            icon=LogIcon.ERROR,
            path=self.ctx.path,
            error=repr(error),
            pending=self.pending.value,
        )
        self.pending.when_zero(lambda: self._fail(error))

    def _fail(self, error: BaseException) -> None:
        if self.terminal:
            return
        self.state = UploadState.FAILED
        self._outcome.set_exception(error)


class MultipartMiddleware(BaseMiddleware):
    """Parses multipart requests before handing them to the rest of the chain.

    Non-multipart requests pass straight through. When parsing or storage fails
    the first error is raised and the rest of the chain is not called.
    """

    def __init__(self, options: MultipartOptions, endpoints: frozenset[str] | list[str] | None = None) -> None:
        super().__init__(endpoints)
        self.options = options

    async def dispatch(self, ctx: RequestContext, call_next: Endpoint) -> Any:
        if not ctx.is_multipart:
            return await call_next(ctx)

        logger.debug("Receiving multipart body", icon=LogIcon.UPLOAD, path=ctx.path)
        await MultipartUpload(ctx, self.options).run()
        return await call_next(ctx)


def multipart(
    storage_engine: StorageEngine,
    *,
    max_file_size: int | None = None,
    max_num_files: int | None = None,
    endpoints: frozenset[str] | list[str] | None = None,
) -> MultipartMiddleware:
    """Build a :class:`MultipartMiddleware`, falling back to the configured limits."""
    options = MultipartOptions(
        storage_engine=storage_engine,
        max_file_size=st.MULTIPART_MAX_FILE_SIZE if max_file_size is None else max_file_size,
        max_num_files=st.MULTIPART_MAX_NUM_FILES if max_num_files is None else max_num_files,
    )
    return MultipartMiddleware(options, endpoints=endpoints)
