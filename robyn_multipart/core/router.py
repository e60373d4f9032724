"""Router with middleware chain, multipart injection and response handling."""

import inspect
from collections.abc import Callable
from functools import wraps
from typing import Any

import orjson
import structlog
from pydantic import BaseModel, ValidationError
from robyn import Request, Response, SubRouter, status_codes
from robyn.robyn import HttpMethod
from robyn.types import Body

from robyn_multipart.core.context import RequestContext
from robyn_multipart.core.exceptions import MultipartError
from robyn_multipart.core.logger import LogIcon, logger
from robyn_multipart.middlewares.base import MiddlewareHandler
from robyn_multipart.models.core import BodyType, FormData, UploadFile


def json_response(status_code: int, payload: Any) -> Response:
    return Response(
        status_code=int(status_code),
        headers={"content-type": "application/json"},
        description=orjson.dumps(payload).decode(),
    )


def validation_response(ex: ValidationError) -> Response:
    return Response(
        status_code=status_codes.HTTP_422_UNPROCESSABLE_ENTITY,
        headers={"content-type": "application/json"},
        description=ex.json(),
    )


def parse_endpoint_signature(
    sig: inspect.Signature,
) -> tuple[dict[str, tuple[BodyType, type | None]], set[str]]:
    """Parse function signature for body, form and file parameters."""
    parsed: dict[str, tuple[BodyType, type | None]] = {}
    file_params: set[str] = set()

    for name, param in sig.parameters.items():
        annotation = param.annotation

        if annotation is UploadFile:
            file_params.add(name)
            continue

        match annotation:
            case type() if issubclass(annotation, FormData):
                parsed[name] = (BodyType.FORM, None)
            case type() if issubclass(annotation, BaseModel):
                parsed[name] = (BodyType.PYDANTIC, type(annotation.__name__, (annotation, Body), {}))
            case type() if issubclass(annotation, Body):
                parsed[name] = (BodyType.JSONABLE, annotation)
            case type() if annotation is dict:
                parsed[name] = (BodyType.JSONABLE, None)
            case _ if name == "body":
                parsed[name] = (BodyType.JSONABLE, None)

    return parsed, file_params


def parse_request_body(
    body_config: dict[str, tuple[BodyType, type | None]],
    kwargs: dict[str, Any],
) -> Response | None:
    """Parse JSON/Pydantic body parameters."""
    for param_name, (body_type, model_cls) in body_config.items():
        if param_name not in kwargs:
            continue
        raw = kwargs[param_name]
        if not isinstance(raw, (str, bytes)):
            continue

        match body_type:
            case BodyType.PYDANTIC if model_cls:
                try:
                    kwargs[param_name] = model_cls.model_validate_json(raw)  # type: ignore[union-attr]
                except ValidationError as ex:
                    return validation_response(ex)
            case BodyType.JSONABLE:
                try:
                    kwargs[param_name] = orjson.loads(raw)
                except orjson.JSONDecodeError as ex:
                    return json_response(
                        status_codes.HTTP_422_UNPROCESSABLE_ENTITY,
                        {"error": "invalid_json", "detail": str(ex)},
                    )
    return None


def parse_form_body(
    body_config: dict[str, tuple[BodyType, type | None]],
    ctx: RequestContext,
    kwargs: dict[str, Any],
) -> Response | None:
    """Fill body parameters from the fields parsed out of a multipart request."""
    form = FormData(ctx.body or {})

    for param_name, (body_type, model_cls) in body_config.items():
        match body_type:
            case BodyType.FORM:
                kwargs[param_name] = form
            case BodyType.PYDANTIC if model_cls and ctx.is_multipart:
                try:
                    kwargs[param_name] = model_cls.model_validate(form)  # type: ignore[union-attr]
                except ValidationError as ex:
                    return validation_response(ex)
            case BodyType.JSONABLE if ctx.is_multipart:
                kwargs[param_name] = form
    return None


def parse_request_files(
    file_params: set[str],
    ctx: RequestContext,
    kwargs: dict[str, Any],
) -> Response | None:
    """Transfer ctx.files to UploadFile kwargs."""
    if not file_params:
        return None

    if not ctx.files:
        return json_response(
            status_codes.HTTP_422_UNPROCESSABLE_ENTITY,
            {"error": "missing_files", "required": sorted(file_params)},
        )

    for param_name in file_params:
        kwargs[param_name] = UploadFile(ctx.files)

    return None


def parse_multipart_error(ex: MultipartError) -> Response:
    """Convert a multipart failure into a JSON error response."""
    return json_response(ex.status_code, {"error": ex.code, "detail": str(ex)})


def parse_response(result: Any) -> Response:
    """Convert handler result to Response."""
    match result:
        case Response():
            return result
        case BaseModel():
            return Response(
                status_code=status_codes.HTTP_200_OK,
                headers={"content-type": "application/json"},
                description=result.model_dump_json(indent=4),
            )
        case dict() | list():
            return json_response(status_codes.HTTP_200_OK, result)
        case _:
            return Response(
                status_code=status_codes.HTTP_200_OK,
                headers={},
                description=str(result),
            )


HTTP_METHODS = (
    HttpMethod.GET,
    HttpMethod.POST,
    HttpMethod.PUT,
    HttpMethod.DELETE,
    HttpMethod.PATCH,
    HttpMethod.HEAD,
    HttpMethod.OPTIONS,
    HttpMethod.TRACE,
    HttpMethod.CONNECT,
)


def _create_method_wrapper(original_method: Callable, router: "Router") -> Callable:
    @wraps(original_method)
    def method_wrapper(*args, **kwargs) -> Callable:
        endpoint = args[0] if args else kwargs.get("endpoint", "")
        full_path = f"{router._prefix}{endpoint}".replace("//", "/")
        decorator = original_method(*args, **kwargs)

        def handler_decorator(handler: Callable) -> Callable:
            sig = inspect.signature(handler)
            body_config, file_params = parse_endpoint_signature(sig)
            form_params = {name for name, (body_type, _) in body_config.items() if body_type is BodyType.FORM}
            has_request_param = "request" in sig.parameters

            @wraps(handler)
            async def wrapped_handler(request: Request, **h_kwargs):
                ctx = RequestContext.from_request(request)

                async def call_handler(current: RequestContext) -> Response:
                    if error := parse_form_body(body_config, current, h_kwargs):
                        return error
                    if not current.is_multipart and (error := parse_request_body(body_config, h_kwargs)):
                        return error

                    if file_params and (error := parse_request_files(file_params, current, h_kwargs)):
                        return error

                    # Pass request to handler only if it declared it
                    if has_request_param:
                        h_kwargs["request"] = request

                    result = await handler(**h_kwargs)
                    return parse_response(result)

                with structlog.contextvars.bound_contextvars(method=ctx.method, route=full_path):
                    try:
                        return await router.middleware_handler(ctx, call_handler, full_path)
                    except MultipartError as ex:
                        logger.warning("Rejected multipart request", icon=LogIcon.FORBIDDEN, error=str(ex))
                        return parse_multipart_error(ex)

            # Build signature: always include request for Robyn injection
            new_params = [inspect.Parameter("request", inspect.Parameter.POSITIONAL_OR_KEYWORD, annotation=Request)]
            for name, param in sig.parameters.items():
                if name == "request" or name in file_params or name in form_params:
                    continue
                if name in body_config:
                    new_params.append(param.replace(annotation=body_config[name][1]))
                else:
                    new_params.append(param)

            wrapped_handler.__signature__ = sig.replace(parameters=new_params)  # type: ignore[attr-defined]
            return decorator(wrapped_handler)

        return handler_decorator

    return method_wrapper


class Router(SubRouter):
    """Enhanced SubRouter running a middleware chain around every handler."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._prefix = kwargs.get("prefix", "")
        self.middleware_handler = MiddlewareHandler()
        self._wrap_methods()

    def _wrap_methods(self) -> None:
        """Wrap HTTP methods with parsing logic."""
        for method in HTTP_METHODS:
            method_name = str(method).split(".")[-1].lower()
            if hasattr(self, method_name):
                original_method = getattr(self, method_name)
                wrapped_method = _create_method_wrapper(original_method, self)
                setattr(self, method_name, wrapped_method)
