"""Middleware that automatically writes audit log entries for mutating API requests.

Logs POST/PUT/PATCH/DELETE requests to /api/ paths. The middleware captures
the response status and, when available, the authenticated user from
request.state (``user_id`` and ``username``, set by ``get_current_user``).
"""

import logging
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.audit.models import AuditLog
from app.database import async_session

logger = logging.getLogger(__name__)

_AUDITED_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
_VERBS = {"POST": "create", "PUT": "update", "PATCH": "update", "DELETE": "delete"}


class AuditLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method not in _AUDITED_METHODS or not request.url.path.startswith("/api/"):
            return await call_next(request)

        response = await call_next(request)

        # Written in its own session so a failure never breaks the request
        try:
            user_id: uuid.UUID | None = getattr(request.state, "user_id", None)
            username: str | None = getattr(request.state, "username", None)

            resource_type, resource_id = _derive_resource(request.url.path)
            ip = request.client.host if request.client else None
            ua = request.headers.get("user-agent", "")[:512]

            action = _derive_action(request.method, request.url.path)
            async with async_session() as db:
                db.add(
                    AuditLog(
                        action=action,
                        user_id=user_id,
                        username=username,
                        resource_type=resource_type,
                        resource_id=resource_id,
                        ip_address=ip,
                        user_agent=ua,
                        method=request.method,
                        path=request.url.path[:500],
                        status_code=response.status_code,
                    )
                )
                await db.commit()
            logger.info(
                "audit: action=%s user=%s resource=%s/%s status=%s",
                action,
                username or user_id,
                resource_type,
                resource_id,
                response.status_code,
            )
        except Exception:
            logger.exception("Failed to write audit log for %s %s", request.method, request.url.path)

        return response


def _segments(path: str) -> list[str]:
    return [s for s in path.split("/") if s and s != "api"]


def _derive_resource(path: str) -> tuple[str | None, str | None]:
    """Split "/api/teams/<id>/slots" into ("teams", "<id>")."""
    segments = _segments(path)
    if not segments:
        return None, None
    return segments[0], segments[1] if len(segments) > 1 else None


def _derive_action(method: str, path: str) -> str:
    """Derive a human-readable action name from the request.

    "POST /api/teams/<id>/slots" -> "teams.slots", "DELETE /api/teams/<id>" -> "teams.delete".
    """
    segments = _segments(path)
    resource = segments[0] if segments else "unknown"
    if len(segments) > 2:
        return f"{resource}.{segments[2]}"
    return f"{resource}.{_VERBS.get(method, method.lower())}"
