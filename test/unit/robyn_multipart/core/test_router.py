"""Tests for custom router with body parsing, form injection and response handling."""

import inspect

import orjson
import pytest
from pydantic import BaseModel
from robyn import Response

from robyn_multipart.core.exceptions import (
    FileTooLargeError,
    ParserError,
    StorageError,
    TooManyFilesError,
)
from robyn_multipart.core.router import (
    BodyType,
    parse_endpoint_signature,
    parse_form_body,
    parse_multipart_error,
    parse_request_body,
    parse_request_files,
    parse_response,
)
from robyn_multipart.models.core import FormData, MemoryStorageFile, UploadFile

# -----------------------------------------------------------------------------
# Test Models
# -----------------------------------------------------------------------------


class SampleModel(BaseModel):
    """Sample Pydantic model for testing."""

    name: str
    value: int


def stored(field_name: str, contents: bytes = b"x", filename: str = "f.txt") -> MemoryStorageFile:
    return MemoryStorageFile(original_filename=filename, field_name=field_name, contents=contents)


# -----------------------------------------------------------------------------
# parse_endpoint_signature Tests
# -----------------------------------------------------------------------------


class TestParseEndpointSignature:
    """Tests for parse_endpoint_signature function."""

    def test_pydantic_model_annotation(self) -> None:
        """Verify Pydantic model annotations are detected."""

        async def handler(body: SampleModel) -> None:
            pass

        body_config, file_params = parse_endpoint_signature(inspect.signature(handler))

        assert body_config["body"][0] == BodyType.PYDANTIC
        assert file_params == set()

    def test_dict_annotation(self) -> None:
        """Verify dict annotations are detected as JSONABLE."""

        async def handler(data: dict) -> None:
            pass

        body_config, _ = parse_endpoint_signature(inspect.signature(handler))

        assert body_config["data"] == (BodyType.JSONABLE, None)

    def test_body_named_parameter(self) -> None:
        """Verify parameter named 'body' is detected as JSONABLE."""

        async def handler(body) -> None:
            pass

        body_config, _ = parse_endpoint_signature(inspect.signature(handler))

        assert body_config["body"] == (BodyType.JSONABLE, None)

    def test_form_data_annotation(self) -> None:
        """Verify FormData annotations are detected as FORM, not JSONABLE."""

        async def handler(form: FormData) -> None:
            pass

        body_config, _ = parse_endpoint_signature(inspect.signature(handler))

        assert body_config["form"] == (BodyType.FORM, None)

    def test_upload_file_annotation(self) -> None:
        """Verify UploadFile annotations are detected as file params."""

        async def handler(files: UploadFile, form: FormData) -> None:
            pass

        body_config, file_params = parse_endpoint_signature(inspect.signature(handler))

        assert file_params == {"files"}
        assert set(body_config) == {"form"}

    def test_no_body_parameters(self) -> None:
        """Verify handlers without body params return empty config."""

        async def handler(request, global_dependencies) -> None:
            pass

        body_config, file_params = parse_endpoint_signature(inspect.signature(handler))

        assert body_config == {}
        assert file_params == set()


# -----------------------------------------------------------------------------
# parse_request_body Tests
# -----------------------------------------------------------------------------


class TestParseRequestBody:
    """Tests for parse_request_body function."""

    def test_pydantic_valid_json(self) -> None:
        """Verify valid JSON is parsed into Pydantic model."""
        kwargs = {"body": '{"name": "test", "value": 42}'}

        assert parse_request_body({"body": (BodyType.PYDANTIC, SampleModel)}, kwargs) is None
        assert kwargs["body"] == SampleModel(name="test", value=42)

    def test_pydantic_invalid_json(self) -> None:
        """Verify invalid JSON returns 422 Response."""
        kwargs = {"body": '{"name": "test"}'}

        error = parse_request_body({"body": (BodyType.PYDANTIC, SampleModel)}, kwargs)

        assert isinstance(error, Response)
        assert error.status_code == 422

    def test_jsonable_invalid_json(self) -> None:
        """Verify invalid JSON returns 422 Response."""
        error = parse_request_body({"data": (BodyType.JSONABLE, None)}, {"data": "not valid json"})

        assert error.status_code == 422

    def test_already_parsed_value_untouched(self) -> None:
        """Verify values filled from a form are not parsed again."""
        form = FormData(name="x")
        kwargs = {"data": form}

        assert parse_request_body({"data": (BodyType.JSONABLE, None)}, kwargs) is None
        assert kwargs["data"] is form


# -----------------------------------------------------------------------------
# parse_form_body Tests
# -----------------------------------------------------------------------------


class TestParseFormBody:
    """Tests for parse_form_body function."""

    def test_form_param_gets_fields(self, make_context) -> None:
        """Verify FORM params receive the parsed fields."""
        ctx = make_context(existing_body={"name": "sanic"})
        kwargs: dict = {}

        assert parse_form_body({"form": (BodyType.FORM, None)}, ctx, kwargs) is None
        assert isinstance(kwargs["form"], FormData)
        assert kwargs["form"] == {"name": "sanic"}

    def test_form_param_empty_without_body(self, make_context) -> None:
        """Verify FORM params are empty when nothing was parsed."""
        kwargs: dict = {}

        parse_form_body({"form": (BodyType.FORM, None)}, make_context(ctype=None), kwargs)

        assert kwargs["form"] == {}

    def test_pydantic_from_multipart_fields(self, make_context) -> None:
        """Verify models validate against multipart fields."""
        ctx = make_context(existing_body={"name": "widget", "value": "7"})
        kwargs: dict = {}

        assert parse_form_body({"body": (BodyType.PYDANTIC, SampleModel)}, ctx, kwargs) is None
        assert kwargs["body"] == SampleModel(name="widget", value=7)

    def test_pydantic_invalid_fields(self, make_context) -> None:
        """Verify invalid multipart fields return 422 Response."""
        ctx = make_context(existing_body={"name": "widget"})

        error = parse_form_body({"body": (BodyType.PYDANTIC, SampleModel)}, ctx, {})

        assert error.status_code == 422

    def test_json_request_left_alone(self, make_context) -> None:
        """Verify non-multipart requests keep their raw body for JSON parsing."""
        ctx = make_context(ctype="application/json")
        kwargs = {"body": '{"a": 1}'}

        parse_form_body({"body": (BodyType.JSONABLE, None)}, ctx, kwargs)

        assert kwargs["body"] == '{"a": 1}'


# -----------------------------------------------------------------------------
# parse_request_files Tests
# -----------------------------------------------------------------------------


class TestParseRequestFiles:
    """Tests for parse_request_files function."""

    def test_no_file_params(self, make_context) -> None:
        """Verify handlers without file params are untouched."""
        kwargs: dict = {}
        assert parse_request_files(set(), make_context(), kwargs) is None
        assert kwargs == {}

    def test_files_injected(self, make_context) -> None:
        """Verify attached files are wrapped in UploadFile."""
        ctx = make_context()
        ctx.files = [stored("a"), stored("b")]
        kwargs: dict = {}

        assert parse_request_files({"files"}, ctx, kwargs) is None
        assert isinstance(kwargs["files"], UploadFile)
        assert len(kwargs["files"]) == 2

    def test_missing_files(self, make_context) -> None:
        """Verify a missing upload returns a 422 JSON error."""
        error = parse_request_files({"files", "avatar"}, make_context(), {})

        assert error.status_code == 422
        assert orjson.loads(error.description) == {"error": "missing_files", "required": ["avatar", "files"]}


# -----------------------------------------------------------------------------
# parse_multipart_error Tests
# -----------------------------------------------------------------------------


class TestParseMultipartError:
    """Tests for parse_multipart_error function."""

    @pytest.mark.parametrize(
        ("error", "status", "code"),
        [
            (ParserError("Unexpected end of multipart body"), 400, "malformed_body"),
            (FileTooLargeError("upload", 10), 413, "file_too_large"),
            (TooManyFilesError(2), 413, "too_many_files"),
            (StorageError("disk full"), 500, "storage_error"),
        ],
    )
    def test_status_and_code(self, error, status, code) -> None:
        """Verify each error maps to its status code and error code."""
        response = parse_multipart_error(error)
        payload = orjson.loads(response.description)

        assert response.status_code == status
        assert payload["error"] == code
        assert payload["detail"] == str(error)


# -----------------------------------------------------------------------------
# parse_response Tests
# -----------------------------------------------------------------------------


class TestParseResponse:
    """Tests for parse_response function."""

    def test_response_passthrough(self) -> None:
        """Verify Response objects pass through unchanged."""
        original = Response(status_code=201, headers={}, description="created")
        assert parse_response(original) is original

    def test_pydantic_model_to_json(self) -> None:
        """Verify Pydantic models are serialized to JSON."""
        result = parse_response(SampleModel(name="test", value=123))

        assert result.status_code == 200
        assert result.headers["content-type"] == "application/json"
        assert "123" in result.description

    def test_dict_to_json(self) -> None:
        """Verify dicts are serialized to JSON."""
        result = parse_response({"key": "value", "num": 42})

        assert result.status_code == 200
        assert orjson.loads(result.description) == {"key": "value", "num": 42}

    def test_list_to_json(self) -> None:
        """Verify lists are serialized to JSON."""
        assert orjson.loads(parse_response([1, 2]).description) == [1, 2]

    def test_other_to_string(self) -> None:
        """Verify other types are converted to string."""
        assert parse_response("plain text").description == "plain text"


# -----------------------------------------------------------------------------
# UploadFile Model Tests
# -----------------------------------------------------------------------------


class TestUploadFileModel:
    """Tests for UploadFile model."""

    def test_empty_upload_file(self) -> None:
        """Verify empty UploadFile is falsy."""
        assert not UploadFile()

    def test_iteration_keeps_order(self) -> None:
        """Verify UploadFile iterates in completion order."""
        upload = UploadFile([stored("b"), stored("a")])
        assert [f.field_name for f in upload] == ["b", "a"]

    def test_get_and_getlist(self) -> None:
        """Verify lookups by field name."""
        first, second = stored("docs", b"1"), stored("docs", b"2")
        upload = UploadFile([first, stored("avatar"), second])

        assert upload.get("docs") is first
        assert upload.getlist("docs") == [first, second]
        assert upload.get("missing") is None
        assert upload.keys() == ["docs", "avatar"]
