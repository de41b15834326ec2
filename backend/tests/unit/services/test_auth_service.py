"""Unit tests for Clerk token verification."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import jwt as pyjwt
import pytest

from src.exceptions import InvalidTokenError, MissingTokenError
from src.services.auth_service import AuthenticatedUser, AuthService, parse_bearer

ISSUER = "https://test-clerk.clerk.accounts.dev"


@pytest.fixture
def claims():
    now = int(datetime.now(timezone.utc).timestamp())
    return {
        "sub": "user_2abc123def456",
        "iss": ISSUER,
        "iat": now,
        "exp": now + 3600,
        "email": "test@example.com",
        "first_name": "Test",
        "last_name": "User",
        "image_url": "https://example.com/avatar.png",
    }


@pytest.fixture
def auth_service():
    return AuthService(clerk_domain="test-clerk.clerk.accounts.dev")


@pytest.fixture
def mock_jwks():
    with patch("src.services.auth_service.PyJWKClient") as jwks_class:
        instance = MagicMock()
        instance.get_signing_key_from_jwt.return_value = MagicMock(key="mock-key")
        jwks_class.return_value = instance
        yield instance


class TestParseBearer:
    @pytest.mark.parametrize("header", [None, ""])
    def test_missing(self, header):
        with pytest.raises(MissingTokenError):
            parse_bearer(header)

    @pytest.mark.parametrize("header", ["Basic abc123", "Bearer", "Bearer a b"])
    def test_malformed(self, header):
        with pytest.raises(InvalidTokenError) as exc_info:
            parse_bearer(header)

        assert "Invalid authorization header format" in str(exc_info.value)

    def test_extracts_token(self):
        assert parse_bearer("bearer abc.def.ghi") == "abc.def.ghi"


class TestAuthenticatedUser:
    def test_from_claims(self, claims):
        user = AuthenticatedUser.from_claims(claims)

        assert user.clerk_id == "user_2abc123def456"
        assert user.email == "test@example.com"
        assert user.profile_image_url == "https://example.com/avatar.png"

    def test_optional_claims_missing(self):
        user = AuthenticatedUser.from_claims({"sub": "user_minimal"})

        assert user.email is None
        assert user.first_name is None
        assert user.profile_image_url is None

    def test_profile_image_url_fallback(self):
        user = AuthenticatedUser.from_claims(
            {"sub": "user_1", "profile_image_url": "https://example.com/p.png"}
        )

        assert user.profile_image_url == "https://example.com/p.png"

    def test_missing_sub(self):
        with pytest.raises(InvalidTokenError):
            AuthenticatedUser.from_claims({"email": "x@example.com"})


class TestVerifyToken:
    @pytest.mark.asyncio
    async def test_success(self, auth_service, claims, mock_jwks):
        with patch.object(pyjwt, "decode", side_effect=[claims, claims]):
            user = await auth_service.verify_token("Bearer valid.token")

        assert user.clerk_id == "user_2abc123def456"
        mock_jwks.get_signing_key_from_jwt.assert_called_once_with("valid.token")

    @pytest.mark.asyncio
    async def test_untrusted_issuer_skips_jwks(self, auth_service, claims, mock_jwks):
        foreign = {**claims, "iss": "https://evil.clerk.accounts.dev"}

        with patch.object(pyjwt, "decode", return_value=foreign):
            with pytest.raises(InvalidTokenError) as exc_info:
                await auth_service.verify_token("Bearer some.token")

        assert "not trusted" in str(exc_info.value)
        mock_jwks.get_signing_key_from_jwt.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired(self, auth_service, claims, mock_jwks):
        with patch.object(
            pyjwt, "decode", side_effect=[claims, pyjwt.ExpiredSignatureError("expired")]
        ):
            with pytest.raises(InvalidTokenError) as exc_info:
                await auth_service.verify_token("Bearer expired.token")

        assert "Token has expired" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_bad_signature(self, auth_service, claims, mock_jwks):
        with patch.object(
            pyjwt, "decode", side_effect=[claims, pyjwt.InvalidSignatureError("bad sig")]
        ):
            with pytest.raises(InvalidTokenError) as exc_info:
                await auth_service.verify_token("Bearer forged.token")

        assert "Token validation failed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_jwks_unavailable(self, auth_service, claims, mock_jwks):
        mock_jwks.get_signing_key_from_jwt.side_effect = pyjwt.PyJWKClientError("fetch failed")

        with patch.object(pyjwt, "decode", return_value=claims):
            with pytest.raises(InvalidTokenError) as exc_info:
                await auth_service.verify_token("Bearer valid.token")

        assert "Unable to verify token" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_malformed_jwt(self, auth_service):
        with pytest.raises(InvalidTokenError):
            await auth_service.verify_token("Bearer not.a.valid.jwt")

    @pytest.mark.asyncio
    async def test_unconfigured_domain(self):
        with pytest.raises(InvalidTokenError) as exc_info:
            await AuthService(clerk_domain="").verify_token("Bearer a.b.c")

        assert "not configured" in str(exc_info.value)

    def test_issuer_normalised(self):
        service = AuthService(clerk_domain="https://test-clerk.clerk.accounts.dev/")

        assert service.issuer == ISSUER
