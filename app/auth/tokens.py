"""Access-token checks for requests coming from the central auth service.

This API never issues tokens. It verifies the signature and the token type,
then asks Redis whether the token's ``jti`` was revoked; the auth service
writes those ``revoked:<jti>`` keys with a TTL matching the token lifetime.
"""

import logging
import uuid

import redis.asyncio as redis
from jose import JWTError, jwt

from app.config import settings

logger = logging.getLogger(__name__)

_REVOKED_PREFIX = "revoked:"

_revocations: redis.Redis | None = None


class InvalidTokenError(Exception):
    pass


def _verification_key() -> str:
    # Public key for RS256, shared secret for HS256
    if settings.jwt_algorithm == "RS256":
        return settings.jwt_public_key
    return settings.jwt_secret_key


def read_identity(token: str) -> tuple[uuid.UUID, str | None]:
    """Return ``(user_id, jti)`` carried by a valid access token."""
    try:
        payload = jwt.decode(token, _verification_key(), algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise InvalidTokenError("Invalid token") from e
    if payload.get("type") != "access":
        raise InvalidTokenError("Invalid token type")
    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError) as e:
        raise InvalidTokenError("Invalid token subject") from e
    return user_id, payload.get("jti")


async def _revocation_store() -> redis.Redis:
    global _revocations
    if _revocations is None:
        logger.info("Connecting to Redis at %s", settings.redis_url.rsplit("@", 1)[-1])
        _revocations = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
    return _revocations


async def close_revocation_store() -> None:
    global _revocations
    if _revocations is not None:
        await _revocations.aclose()
        _revocations = None


async def is_token_revoked(jti: str) -> bool:
    store = await _revocation_store()
    revoked = await store.exists(f"{_REVOKED_PREFIX}{jti}") > 0
    if revoked:
        logger.info("Rejected revoked token: jti=%s", jti)
    return revoked
