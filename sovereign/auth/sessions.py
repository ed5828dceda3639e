import logging
import secrets
import time
from typing import Optional

import jwt

from sovereign.core.errors import Unauthorized
from sovereign.core.types import Session

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
DEFAULT_SESSION_TTL = 3600


class SessionIssuer:
    """
    Mints and validates session credentials.

    A credential is an HS256 JWT: sub = identity, jti = 128-bit random
    session id, exp = expiry. Without the server secret it can be neither
    forged nor guessed from the identity.
    """

    def __init__(self, secret: Optional[str] = None, ttl_seconds: int = DEFAULT_SESSION_TTL):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if not secret:
            logger.warning("No session secret configured; using an ephemeral one (sessions die with the process)")
            secret = secrets.token_hex(32)
        self._secret = secret
        self.ttl_seconds = ttl_seconds

    def issue(self, identity: str, now: Optional[float] = None) -> str:
        issued_at = int(time.time() if now is None else now)
        claims = {
            "sub": identity,
            "jti": secrets.token_hex(16),
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def resolve(self, token: Optional[str]) -> Session:
        if not token or not isinstance(token, str):
            raise Unauthorized("Unauthorized")
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["sub", "jti", "exp"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise Unauthorized("Session expired") from e
        except jwt.InvalidTokenError as e:
            raise Unauthorized("Invalid session token") from e

        return Session(identity=claims["sub"], session_id=claims["jti"], expires_at=float(claims["exp"]))
