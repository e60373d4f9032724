"""Adapter from python-multipart's callback parser to a stream of tagged events.

The adapter owns per-part bookkeeping (headers, transfer decoding, per-file
streams) and enforces the file size and file count limits. Events are yielded in
body order; file contents keep flowing into each :class:`FileStream` after its
``FileEvent`` has been yielded.
"""

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

from python_multipart.decoders import Base64Decoder, QuotedPrintableDecoder
from python_multipart.exceptions import FormParserError
from python_multipart.multipart import MultipartParser, parse_options_header

from robyn_multipart.core.exceptions import FileTooLargeError, ParserError, TooManyFilesError
from robyn_multipart.core.logger import LogIcon, logger
from robyn_multipart.core.streams import FileStream

DEFAULT_CHARSET = "utf-8"
DEFAULT_MIME_TYPE = "text/plain"
DEFAULT_TRANSFER_ENCODING = "7bit"


@dataclass(frozen=True, slots=True)
class ParserLimits:
    max_file_size: int
    max_num_files: int


@dataclass(frozen=True, slots=True)
class FieldEvent:
    name: str
    value: str


@dataclass(frozen=True, slots=True)
class FileEvent:
    field_name: str
    stream: FileStream
    filename: str
    encoding: str
    mime_type: str


@dataclass(frozen=True, slots=True)
class FinishEvent:
    pass


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    error: BaseException


MultipartEvent = FieldEvent | FileEvent | FinishEvent | ErrorEvent


def _decode(value: bytes | None, charset: str = DEFAULT_CHARSET) -> str:
    return value.decode(charset, errors="replace") if value is not None else ""


def resolve_charset(value: bytes | None) -> str:
    """Return the part charset, or the default when it is missing or not a known text codec."""
    charset = _decode(value).strip()
    if not charset:
        return DEFAULT_CHARSET
    try:
        b"".decode(charset)
    except LookupError:
        logger.warning("Unknown part charset", icon=LogIcon.PARSER, charset=charset, fallback=DEFAULT_CHARSET)
        return DEFAULT_CHARSET
    return charset


def get_boundary(content_type: str | None) -> bytes:
    """Extract the boundary parameter of a multipart content type."""
    _, options = parse_options_header(content_type)
    boundary = options.get(b"boundary")
    if not boundary:
        raise ParserError("Multipart content type has no boundary")
    return boundary


class _FieldPart:
    """Accumulates the value of a plain form field."""

    def __init__(self, name: str, charset: str, events: list[MultipartEvent]) -> None:
        self.name = name
        self.charset = charset
        self._events = events
        self._chunks: list[bytes] = []

    def write(self, data: bytes) -> int:
        self._chunks.append(data)
        return len(data)

    def finalize(self) -> None:
        self._events.append(FieldEvent(self.name, b"".join(self._chunks).decode(self.charset, errors="replace")))

    def fail(self, exc: BaseException) -> None:
        pass


class _FilePart:
    """Forwards file contents into a :class:`FileStream`, enforcing the size limit."""

    def __init__(self, field_name: str, stream: FileStream, max_size: int) -> None:
        self.field_name = field_name
        self.stream = stream
        self.max_size = max_size
        self._rejected = False

    def write(self, data: bytes) -> int:
        if self._rejected:
            return len(data)
        if self.stream.bytes_received + len(data) > self.max_size:
            self._rejected = True
            logger.warning(
                "File exceeds size limit", icon=LogIcon.FORBIDDEN, field=self.field_name, limit=self.max_size
            )
            self.stream.set_exception(FileTooLargeError(self.field_name, self.max_size))
            return len(data)
        self.stream.feed(data)
        return len(data)

    def finalize(self) -> None:
        self.stream.feed_eof()

    def fail(self, exc: BaseException) -> None:
        self.stream.set_exception(exc)


class MultipartEventParser:
    """Feeds raw body bytes to python-multipart and collects the resulting events."""

    def __init__(self, boundary: bytes, limits: ParserLimits) -> None:
        self.limits = limits
        self._events: list[MultipartEvent] = []
        self._headers: dict[bytes, bytes] = {}
        self._header_name: list[bytes] = []
        self._header_value: list[bytes] = []
        self._part: _FieldPart | _FilePart | None = None
        self._writer = None
        self._file_count = 0
        self._ended = False
        self._parser = MultipartParser(
            boundary,
            callbacks={
                "on_part_begin": self._on_part_begin,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_end": self._on_end,
            },
        )

    def _on_part_begin(self) -> None:
        self._headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name.append(data[start:end])

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value.append(data[start:end])

    def _on_header_end(self) -> None:
        self._headers[b"".join(self._header_name).lower()] = b"".join(self._header_value)
        self._header_name.clear()
        self._header_value.clear()

    def _on_headers_finished(self) -> None:
        _, disposition = parse_options_header(self._headers.get(b"content-disposition"))
        mime_type, content_options = parse_options_header(self._headers.get(b"content-type"))
        charset = resolve_charset(content_options.get(b"charset"))
        field_name = _decode(disposition.get(b"name"), charset)
        transfer_encoding = _decode(self._headers.get(b"content-transfer-encoding")).strip().lower()
        transfer_encoding = transfer_encoding or DEFAULT_TRANSFER_ENCODING
        file_name = disposition.get(b"filename")

        if file_name is None:
            self._part = _FieldPart(field_name, charset, self._events)
        else:
            self._file_count += 1
            stream = FileStream()
            self._part = _FilePart(field_name, stream, self.limits.max_file_size)
            if self._file_count > self.limits.max_num_files:
                logger.warning("File count limit reached", icon=LogIcon.FORBIDDEN, limit=self.limits.max_num_files)
                stream.set_exception(TooManyFilesError(self.limits.max_num_files))
            self._events.append(
                FileEvent(
                    field_name=field_name,
                    stream=stream,
                    filename=_decode(file_name),
                    encoding=transfer_encoding,
                    mime_type=_decode(mime_type) or DEFAULT_MIME_TYPE,
                )
            )

        match transfer_encoding:
            case "base64":
                self._writer = Base64Decoder(self._part)
            case "quoted-printable":
                self._writer = QuotedPrintableDecoder(self._part)
            case "7bit" | "8bit" | "binary":
                self._writer = self._part
            case _:
                logger.warning("Unknown Content-Transfer-Encoding", icon=LogIcon.PARSER, encoding=transfer_encoding)
                self._writer = self._part

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._writer is not None:
            self._writer.write(data[start:end])

    def _on_part_end(self) -> None:
        # abort() must still reach the part when finalize raises.
        if self._writer is not None:
            self._writer.finalize()
        self._writer = self._part = None

    def _on_end(self) -> None:
        self._ended = True

    def write(self, data: bytes) -> None:
        try:
            self._parser.write(data)
        except FormParserError as ex:
            raise ParserError(f"Malformed multipart body: {ex}") from ex

    def finalize(self) -> None:
        self._parser.finalize()
        if not self._ended:
            raise ParserError("Unexpected end of multipart body")
        self._events.append(FinishEvent())

    def abort(self, exc: BaseException) -> None:
        """Fail the part being received, if any, with ``exc``."""
        part, self._part, self._writer = self._part, None, None
        if part is not None:
            part.fail(exc)

    def pop_events(self) -> list[MultipartEvent]:
        events, self._events = self._events, []
        return events


async def iter_events(
    stream: AsyncIterable[bytes],
    content_type: str | None,
    limits: ParserLimits,
) -> AsyncIterator[MultipartEvent]:
    """Parse a multipart body into ``FieldEvent``/``FileEvent`` items, ending with ``FinishEvent`` or ``ErrorEvent``."""
    try:
        parser = MultipartEventParser(get_boundary(content_type), limits)
    except ParserError as ex:
        yield ErrorEvent(ex)
        return

    try:
        async for chunk in stream:
            parser.write(chunk)
            for event in parser.pop_events():
                yield event
        parser.finalize()
    except Exception as ex:
        for event in parser.pop_events():
            yield event
        parser.abort(ex)
        logger.warning("Multipart parsing failed", icon=LogIcon.PARSER, error=str(ex))
        yield ErrorEvent(ex)
        return

    for event in parser.pop_events():
        yield event
