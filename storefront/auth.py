import logging
import time
from typing import Optional

import jwt
from passlib.context import CryptContext

from .errors import AuthError, ConfigError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
EXP_SECONDS = 60 * 60 * 2  # 2 hours


class CredentialService:
    """Salted pbkdf2_sha256 password hashing with a server-side pepper.

    The pepper is appended to the plaintext before hashing, so a leaked
    digest table is useless without the server configuration too.
    """

    def __init__(self, pepper: str, rounds: int = 29000):
        if not pepper:
            raise ConfigError("password pepper must be set")
        if isinstance(rounds, bool) or not isinstance(rounds, int) or rounds < 1:
            raise ConfigError(f"hash rounds must be a positive integer, got {rounds!r}")
        self._pepper = pepper
        # Use pbkdf2_sha256 to avoid the bcrypt 72-byte limitation
        self._context = CryptContext(schemes=["pbkdf2_sha256"], pbkdf2_sha256__default_rounds=rounds)

    def hash(self, plaintext: str) -> str:
        return self._context.hash(plaintext + self._pepper)

    def verify(self, plaintext: str, digest: str) -> bool:
        try:
            return self._context.verify(plaintext + self._pepper, digest)
        except (ValueError, TypeError):
            # unrecognised or corrupt digest
            return False


class TokenService:
    def __init__(self, secret: str, ttl_seconds: int = EXP_SECONDS):
        if not secret:
            raise ConfigError("token secret must be set")
        self._secret = secret
        self.ttl_seconds = ttl_seconds

    def issue(self, user_id: int, expires_delta: Optional[int] = None) -> str:
        now = int(time.time())
        exp = now + (self.ttl_seconds if expires_delta is None else expires_delta)
        payload = {"sub": str(user_id), "iat": now, "exp": exp}
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> int:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthError("Token expired")
        except jwt.PyJWTError as e:
            logger.info("rejected token: %s", e)
            raise AuthError("Invalid token")
        try:
            return int(payload["sub"])
        except (TypeError, ValueError):
            raise AuthError("Invalid token")


def bearer_token(authorization: Optional[str]) -> str:
    """Pull the token out of an `Authorization: Bearer <token>` header value."""
    if not authorization:
        raise AuthError("Token required")
    parts = authorization.split(None, 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise AuthError("Invalid authorization header")
    return parts[1].strip()
