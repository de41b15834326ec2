"""Clerk session token verification.

Signed-in callers present a Clerk-issued RS256 JWT. The token's issuer must
be the configured Clerk frontend domain; the signing key is looked up from
that domain's JWKS document. The verified ``sub`` claim becomes the
principal's external id, which the user repository maps to a local account.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import jwt
from jwt import PyJWKClient

from src.exceptions import InvalidTokenError, MissingTokenError
from src.utils.logger import get_logger

log = get_logger(__name__)

JWKS_PATH = "/.well-known/jwks.json"


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity claims carried by a verified Clerk token."""

    clerk_id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "AuthenticatedUser":
        clerk_id = claims.get("sub")
        if not clerk_id:
            raise InvalidTokenError("Token missing user identifier")
        return cls(
            clerk_id=clerk_id,
            email=claims.get("email"),
            first_name=claims.get("first_name"),
            last_name=claims.get("last_name"),
            profile_image_url=claims.get("image_url") or claims.get("profile_image_url"),
        )


def parse_bearer(authorization_header: Optional[str]) -> str:
    """Return the raw token from an ``Authorization: Bearer <token>`` header."""
    if not authorization_header:
        raise MissingTokenError()
    scheme, _, token = authorization_header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise InvalidTokenError("Invalid authorization header format")
    return token


class AuthService:
    """Verifies Clerk JWTs against a single trusted Clerk domain."""

    def __init__(self, clerk_domain: str, leeway_seconds: int = 5) -> None:
        self._clerk_domain = clerk_domain.removeprefix("https://").rstrip("/")
        self._leeway = leeway_seconds
        self._jwks_client: Optional[PyJWKClient] = None

    @property
    def issuer(self) -> str:
        return f"https://{self._clerk_domain}"

    def _get_jwks_client(self) -> PyJWKClient:
        if self._jwks_client is None:
            self._jwks_client = PyJWKClient(self.issuer + JWKS_PATH, cache_keys=True)
        return self._jwks_client

    def _check_issuer(self, token: str) -> None:
        """Reject tokens minted for another Clerk instance before any JWKS fetch."""
        unverified = jwt.decode(token, options={"verify_signature": False})
        if unverified.get("iss") != self.issuer:
            log.warning("token issuer rejected", issuer=unverified.get("iss"))
            raise InvalidTokenError("Token issuer not trusted")

    def _decode(self, token: str) -> dict[str, Any]:
        self._check_issuer(token)
        signing_key = self._get_jwks_client().get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            issuer=self.issuer,
            leeway=self._leeway,
            options={"require": ["exp", "iat", "sub"]},
        )

    async def verify_token(self, authorization_header: Optional[str]) -> AuthenticatedUser:
        """Verify the bearer token and return the caller's identity.

        Raises:
            MissingTokenError: no Authorization header
            InvalidTokenError: malformed, expired, untrusted or unverifiable token
        """
        token = parse_bearer(authorization_header)
        if not self._clerk_domain:
            log.error("token rejected", reason="clerk domain not configured")
            raise InvalidTokenError("Authentication is not configured")

        try:
            # JWKS lookup does blocking HTTP on a cache miss
            claims = await asyncio.to_thread(self._decode, token)
        except InvalidTokenError:
            raise
        except jwt.ExpiredSignatureError:
            log.info("token expired")
            raise InvalidTokenError("Token has expired")
        except jwt.PyJWKClientError as e:
            log.error("jwks lookup failed", error=str(e))
            raise InvalidTokenError("Unable to verify token")
        except jwt.InvalidTokenError as e:
            log.warning("token invalid", error=str(e))
            raise InvalidTokenError(f"Token validation failed: {e}")

        user = AuthenticatedUser.from_claims(claims)
        log.debug("token verified", clerk_id=user.clerk_id)
        return user


_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """Process-wide AuthService so the JWKS key cache is shared."""
    global _auth_service
    if _auth_service is None:
        from src.config import get_settings

        _auth_service = AuthService(clerk_domain=get_settings().clerk_domain)
    return _auth_service
