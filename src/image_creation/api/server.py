"""HTTP surface for image generation, classification and lookup.

Endpoints:
  POST /api/images/generate            -- CreateImage, 201 + ImageDto
  POST /api/images/classify            -- ClassifyImage, 201 + ClassifiedImageDto
  GET  /api/images/classified/{id}     -- classified image by id
  GET  /api/images/{id}                -- generated image by id
  GET  /api/images/{id}/base64         -- payload only, text/plain
  GET  /api/images/{id}/classified     -- alias of /api/images/classified/{id}
  GET  /health                         -- dispatcher state and stats

Reads are eventually consistent: a 201 from a command does not mean the
matching GET will already find the record.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from aiohttp import web

from image_creation.application.commands import (
    ClassifyImageCommand,
    ClassifyImageHandler,
    CreateImageCommand,
    CreateImageHandler,
)
from image_creation.application.dispatcher import SubscriptionDispatcher
from image_creation.application.queries import (
    GetClassifiedImageByIdHandler,
    GetClassifiedImageByIdQuery,
    GetImageBase64Handler,
    GetImageBase64Query,
    GetImageByIdHandler,
    GetImageByIdQuery,
)
from image_creation.core.errors import (
    LogAppendError,
    ProviderError,
    ValidationError,
)
from image_creation.core.ids import parse_uuid
from image_creation.observability.logger import get_trace_id, new_trace_id

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-Id"


def create_app(
    *,
    create_image: CreateImageHandler,
    classify_image: ClassifyImageHandler,
    get_image: GetImageByIdHandler,
    get_image_base64: GetImageBase64Handler,
    get_classified_image: GetClassifiedImageByIdHandler,
    dispatcher: SubscriptionDispatcher | None = None,
) -> web.Application:
    """Create the aiohttp web application."""
    app = web.Application(middlewares=[trace_middleware, error_middleware])
    app["create_image"] = create_image
    app["classify_image"] = classify_image
    app["get_image"] = get_image
    app["get_image_base64"] = get_image_base64
    app["get_classified_image"] = get_classified_image
    app["dispatcher"] = dispatcher

    app.router.add_post("/api/images/generate", handle_generate)
    app.router.add_post("/api/images/classify", handle_classify)
    # Before /{id}/... so "classified" is never parsed as an id
    app.router.add_get("/api/images/classified/{id}", handle_get_classified)
    app.router.add_get("/api/images/{id}", handle_get_image)
    app.router.add_get("/api/images/{id}/base64", handle_get_base64)
    app.router.add_get("/api/images/{id}/classified", handle_get_classified)
    app.router.add_get("/health", handle_health)
    return app


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

@web.middleware
async def trace_middleware(request: web.Request, handler):
    """One trace id per request, echoed back in ``X-Trace-Id``."""
    trace_id = new_trace_id()
    response = await handler(request)
    response.headers[TRACE_HEADER] = trace_id
    return response


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Map domain errors onto HTTP status codes."""
    try:
        return await handler(request)
    except ValidationError as exc:
        logger.warning("Rejected %s %s: %s", request.method, request.path, exc)
        return _error(400, str(exc), field=exc.field)
    except (ProviderError, LogAppendError) as exc:
        logger.error("%s %s failed: %s", request.method, request.path, exc)
        return _error(500, str(exc))


def _error(status: int, message: str, **extra: Any) -> web.Response:
    body = {"message": message, "traceId": get_trace_id(), **extra}
    return web.json_response(body, status=status)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def _json_body(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except json.JSONDecodeError as exc:
        raise ValidationError("body", "must be a JSON object") from exc
    if not isinstance(body, dict):
        raise ValidationError("body", "must be a JSON object")
    return body


def _optional_str(body: dict[str, Any], key: str) -> str | None:
    value = body.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(key, "must be a string")
    return value


async def handle_generate(request: web.Request) -> web.Response:
    """POST /api/images/generate -- body ``{"description", "platform"?}``."""
    handler: CreateImageHandler = request.app["create_image"]
    body = await _json_body(request)
    command = CreateImageCommand(
        description=_optional_str(body, "description") or "",
        platform_requested=_optional_str(body, "platform"),
    )
    dto = await handler.handle(command)
    logger.info("Image %s generated on %s", dto.id, dto.platform_used)
    return web.Response(
        text=dto.to_json(),
        status=201,
        content_type="application/json",
        headers={"Location": f"/api/images/{dto.id}"},
    )


async def handle_classify(request: web.Request) -> web.Response:
    """POST /api/images/classify -- body ``{"imageUrl"}``."""
    handler: ClassifyImageHandler = request.app["classify_image"]
    body = await _json_body(request)
    command = ClassifyImageCommand(image_url=_optional_str(body, "imageUrl") or "")
    dto = await handler.handle(command)
    logger.info("Image %s classified as %s", dto.id, dto.classification_result)
    return web.Response(
        text=dto.to_json(),
        status=201,
        content_type="application/json",
        headers={"Location": f"/api/images/classified/{dto.id}"},
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _path_id(request: web.Request) -> uuid.UUID:
    raw = request.match_info["id"]
    try:
        return parse_uuid(raw)
    except ValueError as exc:
        raise ValidationError("id", f"not a UUID: {raw!r}") from exc


def _not_found(what: str, image_id: uuid.UUID) -> web.Response:
    logger.info("%s %s not found", what, image_id)
    return _error(404, f"{what} {image_id} not found")


async def handle_get_image(request: web.Request) -> web.Response:
    handler: GetImageByIdHandler = request.app["get_image"]
    image_id = _path_id(request)
    dto = await handler.handle(GetImageByIdQuery(image_id))
    if dto is None:
        return _not_found("Image", image_id)
    return web.Response(text=dto.to_json(), content_type="application/json")


async def handle_get_base64(request: web.Request) -> web.Response:
    handler: GetImageBase64Handler = request.app["get_image_base64"]
    image_id = _path_id(request)
    payload = await handler.handle(GetImageBase64Query(image_id))
    if not payload:
        return _not_found("Image", image_id)
    return web.Response(text=payload, content_type="text/plain")


async def handle_get_classified(request: web.Request) -> web.Response:
    handler: GetClassifiedImageByIdHandler = request.app["get_classified_image"]
    image_id = _path_id(request)
    dto = await handler.handle(GetClassifiedImageByIdQuery(image_id))
    if dto is None:
        return _not_found("Classified image", image_id)
    return web.Response(text=dto.to_json(), content_type="application/json")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

async def handle_health(request: web.Request) -> web.Response:
    """GET /health -- liveness plus dispatcher state."""
    dispatcher: SubscriptionDispatcher | None = request.app["dispatcher"]
    body: dict[str, Any] = {"status": "ok"}
    if dispatcher is not None:
        body["dispatcher"] = {
            "state": dispatcher.state.value,
            "lastPosition": dispatcher.last_position,
            "stats": dispatcher.stats.to_dict(),
        }
    return web.json_response(body)
