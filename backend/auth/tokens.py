"""Bearer credential issuing and verification.

Credentials are HS256 JWTs signed with the configured secret and carrying the
caller's identity (``userId``, ``email``, ``role``) plus ``iat``/``exp``.
The same ``SessionAuthenticator`` guards websocket connection establishment
and the REST dependencies.
"""

import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog
from jwcrypto import jwk, jwt
from jwcrypto.common import JWException
from pydantic import BaseModel, ValidationError

from errors import AuthenticationError
from models.schemas import UserRole

logger = structlog.get_logger(__name__)

# HS256 keys shorter than the digest size are refused by jwcrypto
MIN_SECRET_BYTES = 32


class Identity(BaseModel):
    """The authenticated caller behind a connection or request."""

    user_id: str
    email: str
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SessionAuthenticator:
    """Verifies (and issues) signed bearer credentials.

    Attributes:
        expires_in: Lifetime of issued credentials.
        algorithm: JWS algorithm used for signing and accepted on verification.
    """

    def __init__(
        self,
        secret: str,
        expires_in: timedelta = timedelta(hours=24),
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the authenticator.

        Args:
            secret: Shared signing secret.
            expires_in: Lifetime of issued credentials.
            algorithm: JWS algorithm (HMAC family).
            clock: Source of "now" for ``iat``/``exp`` on issued credentials.

        Raises:
            ValueError: If ``secret`` is shorter than ``MIN_SECRET_BYTES``.
        """
        if len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ValueError(
                f"signing secret must be at least {MIN_SECRET_BYTES} bytes"
            )
        self._key = jwk.JWK.from_password(secret)
        self.expires_in = expires_in
        self.algorithm = algorithm
        self._clock = clock

    def issue(self, identity: Identity) -> str:
        """Return a signed credential for ``identity``."""
        issued_at = self._clock()
        token = jwt.JWT(
            header={"alg": self.algorithm, "typ": "JWT"},
            claims={
                "userId": identity.user_id,
                "email": identity.email,
                "role": str(identity.role),
                "iat": int(issued_at.timestamp()),
                "exp": int((issued_at + self.expires_in).timestamp()),
            },
        )
        token.make_signed_token(self._key)
        return token.serialize()

    def verify(self, token: str | None) -> Identity:
        """Validate signature and expiry and return the embedded identity.

        Raises:
            AuthenticationError: ``token_missing`` when no credential was
                presented, ``token_expired`` when it has expired and
                ``token_invalid`` for anything else (bad signature, malformed
                token, missing identity claims).
        """
        if token is None or not token.strip():
            raise AuthenticationError(AuthenticationError.TOKEN_MISSING)

        try:
            decoded = jwt.JWT(key=self._key, jwt=token.strip(), algs=[self.algorithm])
            claims = json.loads(decoded.claims)
        except jwt.JWTExpired as e:
            raise AuthenticationError(AuthenticationError.TOKEN_EXPIRED) from e
        except (JWException, ValueError) as e:
            logger.debug("token_decode_failed", error=str(e))
            raise AuthenticationError(AuthenticationError.TOKEN_INVALID) from e

        if not isinstance(claims, dict) or "exp" not in claims:
            raise AuthenticationError(AuthenticationError.TOKEN_INVALID)

        try:
            return Identity(
                user_id=claims["userId"],
                email=claims["email"],
                role=claims["role"],
            )
        except (KeyError, ValidationError) as e:
            raise AuthenticationError(AuthenticationError.TOKEN_INVALID) from e
