"""Per-request context shared by the middleware chain and the route handler."""

import asyncio
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any, Protocol

from python_multipart.multipart import parse_options_header
from robyn import Request

from robyn_multipart.core.settings import settings as st
from robyn_multipart.models.core import UploadedFile


class HeadersLike(Protocol):
    def get(self, key: str, default: str | None = None) -> str | None: ...


async def iter_body(body: bytes | str | None, chunk_size: int) -> AsyncIterator[bytes]:
    """Yield a buffered request body in chunks, giving the event loop a turn between them."""
    if not body:
        return
    data = body.encode("utf-8") if isinstance(body, str) else bytes(body)
    view = memoryview(data)
    for start in range(0, len(data), chunk_size):
        yield bytes(view[start:start + chunk_size])
        await asyncio.sleep(0)


class RequestContext:
    """Request data plus the results attached by middlewares.

    ``body`` holds parsed form fields (``None`` until something parses the body)
    and ``files`` holds the uploaded files in completion order.
    """

    def __init__(
        self,
        headers: HeadersLike,
        stream: AsyncIterable[bytes],
        *,
        request: Any = None,
        method: str = "GET",
        path: str = "/",
        body: dict[str, Any] | None = None,
    ) -> None:
        self.headers = headers
        self.stream = stream
        self.request = request
        self.method = method
        self.path = path
        self.body = body
        self.files: list[UploadedFile] = []

    @classmethod
    def from_request(cls, request: Request, chunk_size: int | None = None) -> "RequestContext":
        """Build a context from a Robyn request."""
        url = getattr(request, "url", None)
        return cls(
            headers=request.headers,
            stream=iter_body(request.body, chunk_size or st.MULTIPART_CHUNK_SIZE),
            request=request,
            method=str(getattr(request, "method", "GET")),
            path=getattr(url, "path", None) or getattr(request, "path", "/"),
        )

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type") or self.headers.get("Content-Type")

    @property
    def mime_type(self) -> str:
        ctype, _ = parse_options_header(self.content_type)
        return ctype.decode("latin-1").lower()

    @property
    def is_multipart(self) -> bool:
        return self.mime_type.startswith("multipart/")

    def __repr__(self) -> str:
        return f"RequestContext(method={self.method!r}, path={self.path!r}, files={len(self.files)})"
