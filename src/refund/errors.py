"""Error types and the handlers that turn them into JSON responses."""

import logging
from typing import Any, Dict, Iterable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

VALIDATION_MESSAGE = "erro de validação"

# Location prefixes FastAPI adds to request validation errors.
_REQUEST_SOURCES = {"body", "query", "path", "header", "cookie"}


class AppError(Exception):
    """Domain failure carrying the HTTP status the client should see."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _new_node() -> Dict[str, Any]:
    return {"errors": []}


def _child(node: Dict[str, Any], key: Any) -> Dict[str, Any]:
    if isinstance(key, int):
        items = node.setdefault("items", [])
        while len(items) <= key:
            items.append(_new_node())
        return items[key]
    return node.setdefault("properties", {}).setdefault(str(key), _new_node())


def treeify_errors(errors: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Nest pydantic error dicts into a tree keyed by field location.

    ``[{"loc": ("body", "email"), "msg": "..."}]`` becomes
    ``{"errors": [], "properties": {"email": {"errors": ["..."]}}}``.
    """
    tree = _new_node()
    for error in errors:
        loc = list(error.get("loc", ()))
        if loc and loc[0] in _REQUEST_SOURCES:
            loc = loc[1:]
        node = tree
        for key in loc:
            node = _child(node, key)
        node["errors"].append(error_message(error))
    return tree


def error_message(error: Dict[str, Any]) -> str:
    """Return the human message of a pydantic error.

    Messages raised from validators as ``ValueError`` are prefixed by pydantic
    with ``"Value error, "``; that prefix is dropped.
    """
    msg = str(error.get("msg", ""))
    prefix = "Value error, "
    if msg.startswith(prefix):
        return msg[len(prefix):]
    return msg


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"message": VALIDATION_MESSAGE, "issues": treeify_errors(exc.errors())},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(status_code=500, content={"message": str(exc)})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
