import logging
from dataclasses import dataclass

from jose import JWTError, jwt
from starlette.requests import Request

from salesdesk.context import set_user_id
from salesdesk.core.config import get_settings


logger = logging.getLogger("salesdesk.auth")


@dataclass
class AuthUser:
    sub: str
    roles: list[str]


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    return auth_header.replace("Bearer ", "", 1) if auth_header.startswith("Bearer ") else ""


async def get_current_user(request: Request) -> AuthUser | None:
    """Resolve the session user from the bearer token, or None when there is no active session."""
    token = _bearer_token(request)
    if not token:
        return None

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        logger.info("auth.token_rejected", extra={"error": str(exc)})
        return None

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        return None

    roles = payload.get("roles", ["user"])
    if not isinstance(roles, list):
        roles = ["user"]

    context = getattr(request.state, "context", None)
    if context is not None:
        context.user_id = subject
    set_user_id(subject)
    return AuthUser(sub=subject, roles=[str(role) for role in roles])
