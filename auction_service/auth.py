import logging
from itsdangerous import URLSafeTimedSerializer, SignatureExpired, BadSignature
from fastapi import Request

from auction_service.config import settings
from common.errors import Unauthenticated

logger = logging.getLogger(__name__)

_serializer = URLSafeTimedSerializer(settings.AUTH_SECRET_KEY)


def create_token(username: str) -> str:
    return _serializer.dumps(username, salt="auth")


def verify_token(token: str) -> str | None:
    try:
        return _serializer.loads(token, salt="auth", max_age=settings.AUTH_TOKEN_MAX_AGE)
    except (SignatureExpired, BadSignature):
        return None


async def get_current_user(request: Request) -> str:
    """Resolve the caller's username from the bearer token or fail with 401."""
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        raise Unauthenticated("Not authenticated")

    username = verify_token(auth_header[7:])
    if not username:
        logger.debug(f"Rejected token on {request.method} {request.url.path}")
        raise Unauthenticated("Invalid or expired token")
    return username
