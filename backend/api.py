"""FastAPI entrypoint for the trust management HTTP endpoints."""

from __future__ import annotations

import hmac
import logging
from functools import lru_cache
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse

from backend.factory import build_trust_tool_service
from backend.services.tools import TrustToolService
from shared import config as _config
from shared.config import MAX_PAGE_SIZE
from shared.models import SyncRequest, ToolError, ToolErrorCode


logger = logging.getLogger(__name__)

_STATUS_BY_ERROR_CODE = {
    ToolErrorCode.VALIDATION_ERROR: 422,
    ToolErrorCode.INVALID_CURSOR: 400,
    ToolErrorCode.NOT_FOUND: 404,
    ToolErrorCode.UNKNOWN_COLLECTION: 404,
    ToolErrorCode.BACKEND_UNAVAILABLE: 503,
    ToolErrorCode.BACKEND_ERROR: 500,
}


@lru_cache(maxsize=1)
def get_tool_service() -> TrustToolService:
    """Create and cache the tool service once per process."""

    service = build_trust_tool_service()
    logger.info(
        "using_repository=%s.%s",
        service.repository.__class__.__module__,
        service.repository.__class__.__name__,
    )
    return service


def _respond(result: Any) -> Any:
    if isinstance(result, ToolError):
        status_code = _STATUS_BY_ERROR_CODE.get(result.code, 500)
        if status_code >= 500:
            logger.warning("tool_error_response code=%s message=%s", result.code.value, result.message)
        detail: dict[str, Any] = {"code": result.code.value, "message": result.message}
        if result.details:
            detail["details"] = result.details
        raise HTTPException(status_code=status_code, detail=jsonable_encoder(detail))
    return jsonable_encoder(result)


app = FastAPI(title="Trust Manager API")

ALLOW_ORIGINS = _config.cors_allow_origins()


@app.middleware("http")
async def log_http_requests(request: Request, call_next):
    """Log incoming requests, HTTP status codes and unexpected errors."""

    logger.info("http_request_received method=%s path=%s", request.method, request.url.path)
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "http_request_failed method=%s path=%s",
            request.method,
            request.url.path,
        )
        raise

    logger.info(
        "http_response_sent method=%s path=%s status_code=%s",
        request.method,
        request.url.path,
        response.status_code,
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger.info("cors_allow_origins=%s", ALLOW_ORIGINS)


@app.exception_handler(Exception)
async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """Return a JSON 500 response for unhandled exceptions."""

    logger.exception(
        "unhandled_exception method=%s path=%s exception_type=%s message=%s",
        request.method,
        request.url.path,
        type(exc).__name__,
        str(exc),
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.get("/health")
def health() -> dict[str, str]:
    """Healthcheck endpoint."""

    return {"status": "ok"}


@app.get("/collections/{collection}/records")
def list_records(
    collection: str,
    search: str | None = None,
    cursor: str | None = None,
    page_size: int | None = Query(default=None, ge=1, le=MAX_PAGE_SIZE),
) -> Any:
    """Return one page of a collection, optionally filtered by a search prefix."""

    return _respond(
        get_tool_service().records_list(collection, search=search, cursor_token=cursor, page_size=page_size)
    )


@app.post("/collections/{collection}/records", status_code=201)
def create_record(collection: str, payload: dict[str, Any] = Body(...)) -> Any:
    return _respond(get_tool_service().records_create(collection, payload))


@app.get("/collections/{collection}/records/{record_id}")
def get_record(collection: str, record_id: str) -> Any:
    return _respond(get_tool_service().records_get(collection, record_id))


@app.patch("/collections/{collection}/records/{record_id}")
def update_record(collection: str, record_id: str, payload: dict[str, Any] = Body(...)) -> Any:
    """Merge ``payload["set"]`` into the stored record."""

    return _respond(get_tool_service().records_update(collection, record_id, payload))


@app.delete("/collections/{collection}/records/{record_id}")
def delete_record(collection: str, record_id: str) -> Any:
    return _respond(get_tool_service().records_delete(collection, record_id))


@app.get("/donors")
def list_donors(
    search: str | None = None,
    cursor: str | None = None,
    page_size: int | None = Query(default=None, ge=1, le=MAX_PAGE_SIZE),
) -> Any:
    """Return a page of donations with the donor totals of that page."""

    return _respond(get_tool_service().donors_list(search=search, cursor_token=cursor, page_size=page_size))


@app.get("/donors/summary")
def summarize_donors(search: str | None = None) -> Any:
    """Return donor totals over every stored donation."""

    return _respond(get_tool_service().donors_summary(search=search))


@app.get("/members/{member_id}/donations")
def member_donations(member_id: str) -> Any:
    return _respond(get_tool_service().member_donation_history(member_id))


@app.get("/trustees")
def list_trustees() -> Any:
    return _respond(get_tool_service().trustees_list())


@app.put("/trustees/{member_id}/role")
def assign_trustee_role(member_id: str, payload: dict[str, Any] = Body(...)) -> Any:
    return _respond(get_tool_service().trustee_assign_role(member_id, payload))


@app.delete("/trustees/{member_id}/role")
def remove_trustee_role(member_id: str, end_date: str | None = None) -> Any:
    return _respond(get_tool_service().trustee_remove_role(member_id, {"end_date": end_date}))


@app.post("/activities/{activity_id}/participants/{member_id}")
def add_activity_participant(activity_id: str, member_id: str) -> Any:
    return _respond(get_tool_service().activity_add_participant(activity_id, member_id))


@app.delete("/activities/{activity_id}/participants/{member_id}")
def remove_activity_participant(activity_id: str, member_id: str) -> Any:
    return _respond(get_tool_service().activity_remove_participant(activity_id, member_id))


@app.get("/dashboard")
def dashboard() -> Any:
    return _respond(get_tool_service().dashboard_stats())


@app.get("/wordpress")
def wordpress_content() -> Any:
    """Live posts and pages from the configured WordPress site."""

    return _respond(get_tool_service().wordpress_content())


@app.post("/sync/wordpress")
def sync_wordpress(payload: SyncRequest) -> Any:
    """Pull WordPress posts into the ``wordpress_posts`` collection."""

    expected_key = _config.sync_api_key()
    if not expected_key or not hmac.compare_digest(
        payload.api_key.encode("utf-8"),
        expected_key.encode("utf-8"),
    ):
        logger.warning("wordpress_sync_unauthorized")
        raise HTTPException(status_code=401, detail="Unauthorized")

    logger.info("wordpress_sync_requested wp_url=%s", payload.wp_url or _config.wordpress_url())
    return _respond(get_tool_service().wordpress_sync(payload.wp_url))
