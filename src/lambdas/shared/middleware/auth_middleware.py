"""Requester identity extraction.

Supports both Authorization: Bearer token and the legacy X-User-ID header:

1. Authorization: Bearer {uuid}  - anonymous-style session token (token IS the user id)
2. Authorization: Bearer {jwt}   - signed session, user id from the 'sub' claim
3. X-User-ID: {uuid}             - legacy header, backward compatible

Only identity is established here. Role state is always resolved
server-side by RoleResolver; no role claim in a token is trusted.
"""

from __future__ import annotations

import logging
import os
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import jwt
from aws_xray_sdk.core import xray_recorder

from src.lambdas.shared.errors.role_errors import UnauthenticatedError
from src.lambdas.shared.logging_utils import log_user_id, sanitize_for_log

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JWTClaim:
    """Validated claims from a JWT token."""

    subject: str
    expiration: datetime
    issued_at: datetime
    issuer: str | None = None


@dataclass(frozen=True)
class JWTConfig:
    """Configuration for JWT validation.

    Attributes:
        secret: Secret key for HMAC validation
        algorithm: JWT algorithm (default: HS256)
        issuer: Expected issuer (optional, for validation)
        leeway_seconds: Clock skew tolerance (default: 60s)
    """

    secret: str
    algorithm: str = "HS256"
    issuer: str | None = "adreach-dashboard"
    leeway_seconds: int = 60


@dataclass(frozen=True)
class AuthContext:
    """Who is making the request and how they proved it."""

    user_id: str | None = None
    auth_method: str | None = None  # 'bearer' | 'jwt' | 'x-user-id'

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


def _get_jwt_config() -> JWTConfig | None:
    """Load JWT configuration from environment.

    Returns:
        JWTConfig if JWT_SECRET is set, None otherwise
    """
    secret = os.environ.get("JWT_SECRET")
    if not secret:
        return None

    return JWTConfig(
        secret=secret,
        algorithm=os.environ.get("JWT_ALGORITHM", "HS256"),
        issuer=os.environ.get("JWT_ISSUER", "adreach-dashboard"),
        leeway_seconds=int(os.environ.get("JWT_LEEWAY_SECONDS", "60")),
    )


def validate_jwt(token: str, config: JWTConfig | None = None) -> JWTClaim | None:
    """Validate a JWT token and extract claims.

    Args:
        token: JWT token string (without "Bearer " prefix)
        config: Optional JWTConfig, uses environment if not provided

    Returns:
        JWTClaim if valid, None if invalid
    """
    if config is None:
        config = _get_jwt_config()
        if config is None:
            logger.debug("JWT_SECRET not configured, cannot validate JWT")
            return None

    try:
        payload = jwt.decode(
            token,
            config.secret,
            algorithms=[config.algorithm],
            issuer=config.issuer,
            leeway=config.leeway_seconds,
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("JWT token has expired")
        return None
    except jwt.InvalidSignatureError:
        logger.warning("JWT token has invalid signature")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug("JWT token rejected", extra={"error_type": type(e).__name__})
        return None

    return JWTClaim(
        subject=payload["sub"],
        expiration=datetime.fromtimestamp(payload["exp"], tz=UTC),
        issued_at=datetime.fromtimestamp(payload["iat"], tz=UTC),
        issuer=payload.get("iss"),
    )


def _is_valid_uuid(value: str) -> bool:
    """Validate UUID v4 format."""
    try:
        uuid.UUID(value, version=4)
        return True
    except (ValueError, AttributeError, TypeError):
        return False


@xray_recorder.capture("extract_auth_context")
def extract_auth_context(headers: Mapping[str, Any] | None) -> AuthContext:
    """Establish the requester's identity from request headers.

    Args:
        headers: Request headers (any case)

    Returns:
        AuthContext; user_id is None when no identity could be established
    """
    normalized = {k.lower(): v for k, v in (headers or {}).items()}

    auth_header = normalized.get("authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if _is_valid_uuid(token):
            return AuthContext(user_id=token, auth_method="bearer")
        claim = validate_jwt(token)
        if claim is not None:
            logger.debug(
                "Identity from JWT",
                extra={"user_id_prefix": log_user_id(claim.subject)},
            )
            return AuthContext(user_id=claim.subject, auth_method="jwt")

    legacy_id = normalized.get("x-user-id")
    if legacy_id:
        if _is_valid_uuid(legacy_id):
            return AuthContext(user_id=legacy_id, auth_method="x-user-id")
        logger.warning(
            "Invalid X-User-ID format",
            extra={"value": sanitize_for_log(legacy_id, max_length=20)},
        )

    return AuthContext()


def extract_user_id(headers: Mapping[str, Any] | None) -> str | None:
    """User id from request headers, or None."""
    return extract_auth_context(headers).user_id


def require_user_id(headers: Mapping[str, Any] | None) -> str:
    """Extract user ID or raise if not authenticated.

    Raises:
        UnauthenticatedError: If no valid identity is present
    """
    user_id = extract_user_id(headers)
    if not user_id:
        raise UnauthenticatedError()
    return user_id
