"""Test fixtures for robyn-multipart unit tests."""

import asyncio
from dataclasses import dataclass, field

import pytest

from robyn_multipart.core.context import RequestContext, iter_body
from robyn_multipart.models.core import MemoryStorageFile
from robyn_multipart.storage.base import HandleFile, StorageEngine

BOUNDARY = "----robyn-multipart-boundary"


# -----------------------------------------------------------------------------
# Mock classes for Robyn Request
# -----------------------------------------------------------------------------


@dataclass
class MockHeaders:
    """Mock Headers object for Robyn Request (case-insensitive like Robyn)."""

    _data: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._data = {k.lower(): v for k, v in self._data.items()}

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._data.get(key.lower(), default)

    def set(self, key: str, value: str) -> None:
        self._data[key.lower()] = value

    def __getitem__(self, key: str) -> str:
        return self._data[key.lower()]

    def __setitem__(self, key: str, value: str) -> None:
        self._data[key.lower()] = value


@dataclass
class MockUrl:
    """Mock Url object for Robyn Request."""

    path: str = "/"


@dataclass
class MockRequest:
    """Mock Request object for Robyn."""

    body: bytes | str = b""
    headers: MockHeaders = field(default_factory=MockHeaders)
    method: str = "POST"
    url: MockUrl = field(default_factory=MockUrl)


# -----------------------------------------------------------------------------
# Storage engines used across tests
# -----------------------------------------------------------------------------


class FailingStorage(StorageEngine):
    """Storage engine that rejects every file."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or RuntimeError("Help im alive")
        self.calls = 0

    async def handle_file(self, file: HandleFile) -> MemoryStorageFile:
        self.calls += 1
        raise self.error


class GatedStorage(StorageEngine):
    """Memory-like engine whose files complete only once their gate is opened.

    Files whose field name is listed in ``fail`` raise after their gate opens.
    """

    def __init__(self, fail: dict[str, Exception] | None = None) -> None:
        self.fail = fail or {}
        self.gates: dict[str, asyncio.Event] = {}
        self.started: list[str] = []
        self.settled: list[str] = []

    def gate(self, field_name: str) -> asyncio.Event:
        return self.gates.setdefault(field_name, asyncio.Event())

    async def handle_file(self, file: HandleFile) -> MemoryStorageFile:
        self.started.append(file.field_name)
        contents = b"".join([chunk async for chunk in file.stream])
        await self.gate(file.field_name).wait()
        self.settled.append(file.field_name)
        if file.field_name in self.fail:
            raise self.fail[file.field_name]
        return MemoryStorageFile(
            original_filename=file.filename,
            field_name=file.field_name,
            contents=contents,
        )


# -----------------------------------------------------------------------------
# Multipart body helpers
# -----------------------------------------------------------------------------


def encode_multipart(*parts: tuple, boundary: str = BOUNDARY) -> bytes:
    """Encode ``(name, value)`` fields and ``(name, filename, data[, content_type])`` files."""
    chunks: list[bytes] = []
    for part in parts:
        if len(part) == 2:
            name, value = part
            chunks.append(
                f'--{boundary}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n'.encode()
                + str(value).encode()
                + b"\r\n"
            )
        else:
            name, filename, data, *rest = part
            content_type = rest[0] if rest else "application/octet-stream"
            chunks.append(
                (
                    f"--{boundary}\r\n"
                    f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
                    f"Content-Type: {content_type}\r\n\r\n"
                ).encode()
                + data
                + b"\r\n"
            )
    chunks.append(f"--{boundary}--\r\n".encode())
    return b"".join(chunks)


@pytest.fixture
def multipart_body():
    """Factory fixture encoding multipart bodies."""
    return encode_multipart


@pytest.fixture
def content_type() -> str:
    return f"multipart/form-data; boundary={BOUNDARY}"


@pytest.fixture
def make_context(content_type: str):
    """Factory fixture to create request contexts over a buffered body."""

    def _make(
        body: bytes = b"",
        ctype: str | None = content_type,
        chunk_size: int = 64,
        path: str = "/upload",
        existing_body: dict | None = None,
    ) -> RequestContext:
        headers = MockHeaders({"content-type": ctype} if ctype else {})
        return RequestContext(
            headers=headers,
            stream=iter_body(body, chunk_size),
            method="POST",
            path=path,
            body=existing_body,
        )

    return _make


@pytest.fixture
def make_mock_request(content_type: str):
    """Factory fixture to create mock Robyn requests."""

    def _make(body: bytes | str = b"", ctype: str | None = content_type, path: str = "/") -> MockRequest:
        headers = MockHeaders({"content-type": ctype} if ctype else {})
        return MockRequest(body=body, headers=headers, url=MockUrl(path=path))

    return _make


@pytest.fixture
def failing_storage() -> FailingStorage:
    return FailingStorage()


@pytest.fixture
def gated_storage() -> GatedStorage:
    return GatedStorage()
