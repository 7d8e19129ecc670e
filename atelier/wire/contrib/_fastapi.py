import json
import logging
from typing import Any, TypeGuard

import fastapi
from fastapi.responses import JSONResponse
from kungfu import Result, Ok, Error
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from atelier.errors import ErrorKind, Errors, Failure
from atelier.ops import Runner
from atelier.wire._app import Application
from atelier.wire._endpoint import Endpoint
from atelier.wire._types import Codec, Trigger
from atelier.wire.codecs.rrc import RequestResponseCodec
from atelier.wire.triggers.http import HTTPRouteTrigger

log = logging.getLogger(__name__)


def is_target(tc: tuple[Trigger, Codec]) -> TypeGuard[tuple[HTTPRouteTrigger, RequestResponseCodec]]:
    return isinstance(tc[0], HTTPRouteTrigger) and isinstance(tc[1], RequestResponseCodec)


# ═══════════════════════════════════════════════════════════════════════════════
# Failures
# ═══════════════════════════════════════════════════════════════════════════════


def failure_response(failure: Failure, request: fastapi.Request | None = None) -> JSONResponse:
    """The one error body every route answers with."""
    where = f"{request.method} {request.url.path}" if request is not None else "-"
    if failure.kind is ErrorKind.INTERNAL:
        log.error("%s -> %d %s", where, failure.status_code, failure.message)
    else:
        log.warning("%s -> %d %s", where, failure.status_code, failure.message)

    body: dict[str, str] = {"error": failure.message}
    if failure.reason is not None:
        body["reason"] = failure.reason
    return JSONResponse(body, status_code=failure.status_code)


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item["loc"]) or "body"
        parts.append(f"{loc}: {item['msg']}")
    return "; ".join(parts)


async def _payload(
    request: fastapi.Request,
    trigger: HTTPRouteTrigger,
    req_cls: type[BaseModel],
) -> Result[BaseModel, Failure]:
    """Gather query or JSON body, merge path params, validate once."""
    data: dict[str, Any]
    if trigger.reads == "query":
        data = dict(request.query_params)
    else:
        raw = await request.body()
        if not raw.strip():
            data = {}
        else:
            try:
                decoded = json.loads(raw)
            except ValueError:
                return Error(Errors.invalid_argument("Malformed JSON body"))
            if not isinstance(decoded, dict):
                return Error(Errors.invalid_argument("JSON body must be an object"))
            data = decoded
    data.update(request.path_params)

    try:
        return Ok(req_cls.model_validate(data))
    except ValidationError as e:
        return Error(Errors.invalid_argument(_describe(e)))


# ═══════════════════════════════════════════════════════════════════════════════
# Compiler
# ═══════════════════════════════════════════════════════════════════════════════


def compile_to_fastapi_route(
    endp: Endpoint,
) -> list[tuple[HTTPRouteTrigger, Any, dict[str, Any]]]:  # (trigger, route_func, route kwargs)
    routes: list[tuple[HTTPRouteTrigger, Any, dict[str, Any]]] = []

    for exposure in endp.exposures:
        if not is_target(exposure):
            continue
        http_trigger, req_resp_codec = exposure

        def make_handler(
            trigger: HTTPRouteTrigger,
            req_cls: type[Any],
            resp_cls: type[Any] | None,
            runner: Runner,
        ) -> Any:
            async def _route_handler(request: fastapi.Request) -> fastapi.Response:
                caller: Any = None
                if trigger.guard is not None:
                    match trigger.guard.authorize(request.headers):
                        case Ok(who):
                            caller = who
                        case Error(failure):
                            return failure_response(failure, request)

                match await _payload(request, trigger, req_cls):
                    case Ok(model):
                        pass
                    case Error(failure):
                        return failure_response(failure, request)

                result = await runner.run(model.to_domain(caller))
                match result:
                    case Ok(value):
                        if resp_cls is None:
                            return fastapi.Response(status_code=trigger.status_code)
                        body = resp_cls.from_domain(value)
                        return JSONResponse(
                            body.model_dump(mode="json", by_alias=True),
                            status_code=trigger.status_code,
                        )
                    case Error(failure):
                        return failure_response(failure, request)

            _route_handler.__name__ = f"{trigger.method.lower()}_{req_cls.__name__}"
            return _route_handler

        handler = make_handler(
            http_trigger,
            req_resp_codec.request,
            req_resp_codec.response,
            endp.runner,
        )

        kwargs: dict[str, Any] = {"status_code": http_trigger.status_code}
        if http_trigger.reads == "body":
            kwargs["openapi_extra"] = {
                "requestBody": {
                    "content": {
                        "application/json": {
                            "schema": req_resp_codec.request.model_json_schema(by_alias=True)  # type: ignore[attr-defined]
                        }
                    }
                }
            }
        routes.append((http_trigger, handler, kwargs))

    return routes


def add_endpoint_to_app(
    app: fastapi.FastAPI,
    endp: Endpoint,
) -> None:
    for trigger, handler, kwargs in compile_to_fastapi_route(endp):
        route_method = getattr(app, trigger.method.lower(), None)
        if route_method is None:
            raise ValueError(f"Unsupported HTTP method: {trigger.method}")

        route_method(trigger.path, **kwargs)(handler)


# ═══════════════════════════════════════════════════════════════════════════════
# Application
# ═══════════════════════════════════════════════════════════════════════════════


def install_error_handlers(app: fastapi.FastAPI) -> None:
    """Unknown routes, wrong methods and crashes answer in the same error shape."""

    async def on_http_error(request: fastapi.Request, exc: StarletteHTTPException) -> fastapi.Response:
        kind = {
            401: ErrorKind.UNAUTHORIZED,
            403: ErrorKind.FORBIDDEN,
            404: ErrorKind.NOT_FOUND,
        }.get(exc.status_code, ErrorKind.INVALID_ARGUMENT)
        response = failure_response(Failure(kind, str(exc.detail)), request)
        response.status_code = exc.status_code
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    async def on_crash(request: fastapi.Request, exc: Exception) -> fastapi.Response:
        log.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return failure_response(Errors.internal(), request)

    app.add_exception_handler(StarletteHTTPException, on_http_error)
    app.add_exception_handler(Exception, on_crash)


def from_application(app: Application, **fastapi_kwargs: Any) -> fastapi.FastAPI:
    f_app = fastapi.FastAPI(**fastapi_kwargs)
    install_error_handlers(f_app)

    for endp in app.endpoints:
        add_endpoint_to_app(f_app, endp)

    return f_app


__all__ = (
    "add_endpoint_to_app",
    "from_application",
    "compile_to_fastapi_route",
    "failure_response",
    "install_error_handlers",
)
