# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Token Issuer

Mints and validates the access/refresh credential pair bound to
(identity, device, platform). Stateless: no I/O, only the configured
secrets. Access and refresh tokens are signed with distinct secrets.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

import jwt

from ..core.exceptions import ConfigurationError, ExpiredToken, InvalidToken
from ..core.settings import INSECURE_SECRETS, SecuritySettings
from ..data.models import Platform

logger = logging.getLogger(__name__)


class TokenType(StrEnum):
    """Types of JWT tokens."""

    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """Decoded token payload."""

    identity: str
    device: str
    platform: Platform
    for_system: bool
    token_type: TokenType
    issued_at: datetime
    expires_at: datetime
    token_id: str


@dataclass(frozen=True)
class TokenPair:
    """Pair of access and refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int = 0  # Seconds until access token expires


class TokenIssuer:
    """
    JWT token generation and validation.

    Usage:
        issuer = TokenIssuer(settings.security)

        # Generate tokens
        pair = issuer.issue(identity, device, Platform.APP, for_system=False)

        # Validate token
        claims = issuer.validate_access(pair.access_token)
    """

    def __init__(self, settings: SecuritySettings):
        self.settings = settings
        self.algorithm = settings.jwt_algorithm
        self.issuer = settings.token_issuer
        self.access_secret = settings.access_token_secret
        self.refresh_secret = settings.refresh_token_secret
        self.access_token_expire = timedelta(minutes=settings.access_token_ttl_minutes)
        self.refresh_token_expire = timedelta(days=settings.refresh_token_ttl_days)

        # Validate secrets at initialization
        self._validate_secrets()

    def _validate_secrets(self) -> None:
        """
        Validate signing secrets meet security requirements.

        Requirements:
        - Must be present (not None or empty)
        - Must be at least 32 characters
        - Must not be a known insecure default
        - Access and refresh secrets must differ

        Raises:
            ConfigurationError: If a secret fails validation
        """
        for name, secret in (
            ("access_token_secret", self.access_secret),
            ("refresh_token_secret", self.refresh_secret),
        ):
            if not secret:
                raise ConfigurationError(f"SECURITY_{name.upper()} is required", setting=name)
            if len(secret) < 32:
                raise ConfigurationError(
                    f"SECURITY_{name.upper()} must be at least 32 characters "
                    f"(current length: {len(secret)})",
                    setting=name,
                )
            if secret.lower().replace("-", "_") in INSECURE_SECRETS:
                raise ConfigurationError(
                    f"SECURITY_{name.upper()} is using an insecure default value", setting=name
                )
            unique_chars = len(set(secret))
            if unique_chars < 10:
                logger.warning(
                    "SECURITY_%s has low entropy (%d unique characters). "
                    "Consider using a more random key for production.",
                    name.upper(),
                    unique_chars,
                )

        if self.access_secret == self.refresh_secret:
            raise ConfigurationError(
                "Access and refresh tokens must be signed with distinct secrets",
                setting="refresh_token_secret",
            )

    def _sign(
        self,
        token_type: TokenType,
        identity: str,
        device: str,
        platform: Platform | str,
        for_system: bool,
    ) -> str:
        now = datetime.now(UTC)
        if token_type is TokenType.ACCESS:
            secret, expire = self.access_secret, self.access_token_expire
        else:
            secret, expire = self.refresh_secret, self.refresh_token_expire

        payload = {
            "sub": identity,
            "device": device,
            "platform": Platform(platform).value,
            "for_system": bool(for_system),
            "type": token_type.value,
            "iss": self.issuer,
            "iat": now,
            "exp": now + expire,
            # Fresh per token, never reused across signing calls
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def issue(
        self,
        identity: str,
        device: str,
        platform: Platform | str,
        for_system: bool = False,
    ) -> TokenPair:
        """Create both access and refresh tokens."""
        return TokenPair(
            access_token=self._sign(TokenType.ACCESS, identity, device, platform, for_system),
            refresh_token=self._sign(TokenType.REFRESH, identity, device, platform, for_system),
            expires_in=int(self.access_token_expire.total_seconds()),
        )

    def issue_access(
        self,
        identity: str,
        device: str,
        platform: Platform | str,
        for_system: bool = False,
    ) -> str:
        """Create an access token only (renewal path)."""
        return self._sign(TokenType.ACCESS, identity, device, platform, for_system)

    def _decode(self, token: str, secret: str, expected_type: TokenType) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "sub", "jti"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise ExpiredToken(token_type=expected_type.value) from e
        except jwt.InvalidTokenError as e:
            raise InvalidToken(token_type=expected_type.value, reason=str(e)) from e

        if payload.get("type") != expected_type.value:
            raise InvalidToken(
                token_type=expected_type.value, reason=f"got {payload.get('type')!r} token"
            )

        try:
            return TokenClaims(
                identity=payload["sub"],
                device=payload["device"],
                platform=Platform(payload["platform"]),
                for_system=bool(payload.get("for_system", False)),
                token_type=expected_type,
                issued_at=datetime.fromtimestamp(payload["iat"], tz=UTC),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
                token_id=payload["jti"],
            )
        except (KeyError, ValueError) as e:
            raise InvalidToken(token_type=expected_type.value, reason="malformed claims") from e

    def validate_access(self, token: str) -> TokenClaims:
        """
        Decode and validate an access token.

        Raises:
            ExpiredToken: Token has expired
            InvalidToken: Token is invalid
        """
        return self._decode(token, self.access_secret, TokenType.ACCESS)

    def validate_refresh(self, token: str) -> TokenClaims:
        """
        Decode and validate a refresh token.

        Raises:
            ExpiredToken: Token has expired
            InvalidToken: Token is invalid
        """
        return self._decode(token, self.refresh_secret, TokenType.REFRESH)


__all__ = [
    "TokenType",
    "TokenClaims",
    "TokenPair",
    "TokenIssuer",
]
