"""
Bearer Tokens
=============
Signed, self-contained session tokens (JWT).

Signature and expiry are verifiable without a store round trip. Expiry is
checked against the injectable clock rather than inside PyJWT so it follows
the same time source as the session registry.
"""

from typing import Optional

import jwt
import structlog

from ..clock import Clock, utcnow
from ..errors import SessionExpired, SessionInvalid
from .models import SessionClaims

logger = structlog.get_logger(__name__)

REQUIRED_CLAIMS = ["sub", "role", "sid", "iat", "exp", "iss"]


class BearerTokenCodec:
    """Encodes and verifies bearer tokens."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        issuer: str = "healthhub",
        clock: Optional[Clock] = None,
    ):
        if not secret:
            raise ValueError("A signing secret is required")
        self.secret = secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.clock = clock or utcnow

    def encode(self, claims: SessionClaims) -> str:
        return jwt.encode(
            claims.to_payload(self.issuer),
            self.secret,
            algorithm=self.algorithm,
        )

    def decode(self, token: str) -> SessionClaims:
        """
        Verify signature, issuer and expiry.

        Raises:
            SessionExpired: token's own expiry has passed
            SessionInvalid: malformed, tampered or foreign token
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"verify_exp": False, "verify_iat": False, "require": REQUIRED_CLAIMS},
            )
        except jwt.InvalidSignatureError:
            raise SessionInvalid("bad_signature")
        except jwt.DecodeError:
            raise SessionInvalid("malformed_token")
        except (jwt.MissingRequiredClaimError, jwt.InvalidIssuerError):
            raise SessionInvalid("invalid_claims")
        except jwt.InvalidTokenError:
            raise SessionInvalid("invalid_token")

        try:
            claims = SessionClaims.from_payload(payload)
        except (KeyError, TypeError, ValueError, OverflowError):
            raise SessionInvalid("invalid_claims")

        if self.clock() >= claims.expires_at:
            raise SessionExpired("token_expired")

        return claims
