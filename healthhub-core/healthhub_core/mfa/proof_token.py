"""
Challenge Token
===============
Signed reference to a pending MFA challenge, handed to the caller in place
of a session.

The token is a JWT with its own audience, so it is never accepted as a
bearer session and a bearer session is never accepted here, even though
both share a signing secret.
"""

from datetime import datetime
from typing import Optional

import jwt

CHALLENGE_AUDIENCE = "healthhub:mfa"


class ChallengeToken:
    """Generates and verifies signed MFA challenge references."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def generate(self, challenge_id: str, identity: str, expires_at: datetime) -> str:
        payload = {
            "cid": challenge_id,
            "sub": identity,
            "aud": CHALLENGE_AUDIENCE,
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str, now: Optional[datetime] = None) -> Optional[dict]:
        """
        Verify a challenge token.

        Args:
            token: Token from generate()
            now: Current time; expiry is not checked when omitted

        Returns:
            Payload if the signature is valid and not expired, None otherwise
        """
        if not token:
            return None
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=CHALLENGE_AUDIENCE,
                options={"verify_exp": False, "require": ["cid", "sub", "exp"]},
            )
        except jwt.InvalidTokenError:
            return None

        if now is not None and now.timestamp() >= payload["exp"]:
            return None
        return payload
