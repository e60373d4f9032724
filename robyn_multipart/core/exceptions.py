"""Error hierarchy for multipart request handling."""

from http import HTTPStatus


class MultipartError(Exception):
    """Base class for every error raised by robyn-multipart."""

    status_code: int = HTTPStatus.BAD_REQUEST
    code: str = "multipart_error"


class ConfigurationError(MultipartError, ValueError):
    """Invalid middleware or storage options. Raised at construction time."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    code = "configuration_error"


class ParserError(MultipartError):
    """Malformed multipart body or premature end of input."""

    code = "malformed_body"


class FileTooLargeError(ParserError):
    """A file part exceeded the configured maximum size."""

    status_code = HTTPStatus.REQUEST_ENTITY_TOO_LARGE
    code = "file_too_large"

    def __init__(self, field_name: str, limit: int) -> None:
        super().__init__(f"File in field '{field_name}' exceeds the {limit} byte limit")
        self.field_name = field_name
        self.limit = limit


class TooManyFilesError(ParserError):
    """The request carried more file parts than allowed."""

    status_code = HTTPStatus.REQUEST_ENTITY_TOO_LARGE
    code = "too_many_files"

    def __init__(self, limit: int) -> None:
        super().__init__(f"Request exceeds the limit of {limit} files")
        self.limit = limit


class StorageError(MultipartError):
    """A storage engine produced an unusable result."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    code = "storage_error"
