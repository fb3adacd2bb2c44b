import uuid
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from salesdesk.context import reset_user_id, set_user_id


REQUEST_ID_HEADER = "x-request-id"


@dataclass
class RequestContext:
    request_id: str
    correlation_id: str
    user_id: str | None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach a per-request context; the user id is filled in once the bearer token is resolved."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = getattr(request.state, "correlation_id", None) or ""
        request_id = request.headers.get(REQUEST_ID_HEADER) or correlation_id or str(uuid.uuid4())
        request.state.context = RequestContext(
            request_id=request_id,
            correlation_id=correlation_id,
            user_id=None,
        )
        token = set_user_id(None)
        try:
            response = await call_next(request)
        finally:
            reset_user_id(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
