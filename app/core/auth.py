"""Authentication: verify provider-issued JWTs and expose the caller's user id."""

from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlunparse

import httpx
import structlog
from fastapi import Depends, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import require_config, settings
from app.core.errors import ApiError, ErrorCode

# Validate required auth configuration on module load
require_config("AUTH0_DOMAIN", "AUTH0_API_AUDIENCE", "AUTH0_ALGORITHMS")

logger = structlog.get_logger(__name__)

# Mock JWKS for DEBUG mode (populated by tests)
_mock_jwks: dict[str, Any] | None = None


def set_mock_jwks(jwks: dict[str, Any]) -> None:
    """
    Set mock JWKS for DEBUG mode testing.

    Args:
        jwks: JWKS dictionary with test public keys

    Raises:
        RuntimeError: If called when DEBUG=False
    """
    if not settings.DEBUG:
        msg = "set_mock_jwks() can only be called in DEBUG mode"
        raise RuntimeError(msg)
    global _mock_jwks  # noqa: PLW0603
    _mock_jwks = jwks


# auto_error=False so a missing header is reported as our own 401 error body
security = HTTPBearer(auto_error=False)

# JWKS cache (JSON Web Key Set from the identity provider)
_jwks_cache: dict[str, Any] | None = None
_jwks_cache_time: datetime | None = None
_jwks_cache_ttl = timedelta(hours=1)


def clear_jwks_cache() -> None:
    """Forget the cached JWKS so the next verification fetches it again."""
    global _jwks_cache, _jwks_cache_time  # noqa: PLW0603
    _jwks_cache = None
    _jwks_cache_time = None


def _unauthorized(message: str) -> ApiError:
    return ApiError(ErrorCode.UNAUTHORIZED, message, status.HTTP_401_UNAUTHORIZED)


async def get_jwks(domain: str) -> dict[str, Any]:
    """
    Fetch the provider's JWKS. Results are cached for 1 hour.

    Args:
        domain: Provider domain (e.g., 'your-tenant.auth0.com')

    Returns:
        JWKS dictionary containing public keys

    Raises:
        ApiError: SERVICE_UNAVAILABLE if the JWKS cannot be fetched
    """
    global _jwks_cache, _jwks_cache_time  # noqa: PLW0603

    now = datetime.now(UTC)
    if (
        _jwks_cache is not None
        and "keys" in _jwks_cache
        and _jwks_cache_time is not None
        and now - _jwks_cache_time < _jwks_cache_ttl
    ):
        return _jwks_cache

    try:
        async with httpx.AsyncClient() as client:
            jwks_url = urlunparse(("https", domain, "/.well-known/jwks.json", "", "", ""))
            response = await client.get(jwks_url, timeout=10.0)
            response.raise_for_status()
            _jwks_cache = response.json()
            _jwks_cache_time = now
            return _jwks_cache
    except httpx.HTTPError as e:
        logger.error("jwks_fetch_failed", domain=domain, error=str(e))
        raise ApiError(
            ErrorCode.SERVICE_UNAVAILABLE,
            "Unable to verify credentials right now",
            status.HTTP_503_SERVICE_UNAVAILABLE,
        ) from e


async def verify_jwt(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> dict[str, Any]:
    """
    Verify a bearer JWT against the provider JWKS (mock JWKS in DEBUG mode).

    Args:
        credentials: HTTP Bearer credentials, None when the header is absent

    Returns:
        JWT payload dictionary containing claims (e.g., 'sub', 'iat', 'exp')

    Raises:
        ApiError: UNAUTHORIZED if the token is missing or fails verification
    """
    if credentials is None:
        raise _unauthorized("Authentication required")

    token = credentials.credentials

    try:
        unverified_header = jwt.get_unverified_header(token)
        kid = unverified_header.get("kid")
        if not kid:
            raise _unauthorized("Token missing 'kid' in header")

        if settings.DEBUG and _mock_jwks is not None:
            jwks = _mock_jwks
        elif settings.DEBUG:
            raise ApiError(
                ErrorCode.INTERNAL_ERROR,
                "Mock JWKS not configured for DEBUG mode",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        else:
            jwks = await get_jwks(settings.AUTH0_DOMAIN)

        matching_key = next((key for key in jwks.get("keys", []) if key.get("kid") == kid), None)
        if not matching_key:
            raise _unauthorized("Unable to find appropriate signing key")

        required_fields = ["kty", "kid", "use", "n", "e"]
        if missing_fields := [field for field in required_fields if field not in matching_key]:
            logger.error("jwks_key_incomplete", kid=kid, missing_fields=missing_fields)
            raise _unauthorized("Unable to find appropriate signing key")

        rsa_key = {field: matching_key[field] for field in required_fields}
        issuer = urlunparse(("https", settings.AUTH0_DOMAIN, "/", "", "", ""))
        return jwt.decode(
            token,
            rsa_key,
            algorithms=settings.AUTH0_ALGORITHMS,
            audience=settings.AUTH0_API_AUDIENCE,
            issuer=issuer,
        )

    except JWTError as e:
        logger.info("jwt_verification_failed", error=str(e))
        raise _unauthorized("Invalid authentication credentials") from e


async def get_current_user_id(payload: dict[str, Any] = Depends(verify_jwt)) -> str:
    """
    Resolve the caller's user id from the verified token's ``sub`` claim.

    Args:
        payload: JWT payload from verify_jwt dependency

    Returns:
        Provider subject identifying the user

    Raises:
        ApiError: UNAUTHORIZED if the token has no 'sub' claim
    """
    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise _unauthorized("Token missing 'sub' claim")
    return user_id
