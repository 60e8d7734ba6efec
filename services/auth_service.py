"""
API token validation.

Tokens are HS256 JWTs signed with a shared secret:

    sub  scope string the token grants (``api:metrics``, ``ai``, ``admin``, ``*``)
    iat  issued-at (seconds)
    exp  optional expiry (seconds)
    jti  optional token id; enables revocation and usage tracking

``TokenValidator.validate`` returns an ``AuthenticatedIdentity`` or an
``AuthFailure`` instead of raising, so callers decide how to surface and
record each reason. Checks run in a fixed order: structure, expiry,
signature, revocation. Expiry is read from the unverified claims so an
expired token is always reported as expired, whatever its signature.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Union

import jwt

from errors import UpstreamError
from infrastructure.kv.protocol import KVStore
from shared import kv_keys
from shared.logging import get_logger

log = get_logger(__name__)

ALGORITHM = "HS256"
REVOKED_MARKER = "revoked"


class AuthFailureReason(str, Enum):
    MISSING = "missing"
    MALFORMED = "malformed"
    INVALID_SIGNATURE = "invalid-signature"
    EXPIRED = "expired"
    REVOKED = "revoked"
    INSUFFICIENT_SCOPE = "insufficient-scope"


@dataclass(frozen=True)
class AuthenticatedIdentity:
    subject: str
    issued_at: int
    token_id: Optional[str] = None
    expires_at: Optional[int] = None


@dataclass(frozen=True)
class AuthFailure:
    reason: AuthFailureReason
    message: str


ValidationResult = Union[AuthenticatedIdentity, AuthFailure]


def extract_token(
    headers: Mapping[str, str], query: Mapping[str, str]
) -> Optional[str]:
    """Return the credential from ``Authorization: Bearer`` or ``?token=``.

    The header wins when both are present.
    """
    auth_header = headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        if token:
            return token
    token = (query.get("token") or "").strip()
    return token or None


class TokenValidator:
    def __init__(self, secret: str, kv: KVStore, leeway: int = 0) -> None:
        self._secret = secret
        self._kv = kv
        self._leeway = leeway

    async def validate(self, raw_token: Optional[str]) -> ValidationResult:
        if not raw_token:
            return AuthFailure(AuthFailureReason.MISSING, "Authentication required")

        try:
            unverified = jwt.decode(
                raw_token, options={"verify_signature": False, "verify_exp": False}
            )
        except jwt.InvalidTokenError:
            return AuthFailure(AuthFailureReason.MALFORMED, "Malformed token")

        exp = unverified.get("exp")
        if exp is not None:
            try:
                expired = float(exp) + self._leeway < time.time()
            except (TypeError, ValueError):
                return AuthFailure(AuthFailureReason.MALFORMED, "Malformed token")
            if expired:
                return AuthFailure(AuthFailureReason.EXPIRED, "Token has expired")

        if not self._secret:
            log.error("jwt_secret_not_configured")
            return AuthFailure(AuthFailureReason.INVALID_SIGNATURE, "Invalid token")

        try:
            claims = jwt.decode(
                raw_token,
                self._secret,
                algorithms=[ALGORITHM],
                leeway=self._leeway,
                options={"require": ["sub"]},
            )
        except jwt.ExpiredSignatureError:
            return AuthFailure(AuthFailureReason.EXPIRED, "Token has expired")
        except jwt.InvalidSignatureError:
            return AuthFailure(AuthFailureReason.INVALID_SIGNATURE, "Invalid token")
        except jwt.InvalidTokenError:
            return AuthFailure(AuthFailureReason.MALFORMED, "Malformed token")

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            return AuthFailure(AuthFailureReason.MALFORMED, "Token has no subject")

        token_id = claims.get("jti")
        if token_id is not None:
            token_id = str(token_id)
            if await self._is_revoked(token_id):
                return AuthFailure(AuthFailureReason.REVOKED, "Token has been revoked")

        return AuthenticatedIdentity(
            subject=subject,
            issued_at=int(claims.get("iat", 0)),
            token_id=token_id,
            expires_at=int(claims["exp"]) if claims.get("exp") is not None else None,
        )

    async def _is_revoked(self, token_id: str) -> bool:
        try:
            marker = await self._kv.get(kv_keys.revocation_key(token_id))
        except Exception as e:
            # Fail closed: a token is not accepted if revocation cannot be checked
            raise UpstreamError(
                "Revocation lookup failed", details={"error": str(e)}
            ) from e
        return marker is not None


def issue_token(
    subject: str,
    secret: str,
    *,
    expires_in: Optional[int] = None,
    token_id: Optional[str] = None,
    issued_at: Optional[int] = None,
) -> str:
    """Sign a token for *subject*. Pass ``token_id=""`` to omit ``jti``."""
    now = int(time.time()) if issued_at is None else issued_at
    claims: dict = {"sub": subject, "iat": now}
    if expires_in is not None:
        claims["exp"] = now + expires_in
    if token_id is None:
        token_id = str(uuid.uuid4())
    if token_id:
        claims["jti"] = token_id
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


async def revoke_token(kv: KVStore, token_id: str) -> str:
    """Write the revocation marker for *token_id* and return its key."""
    key = kv_keys.revocation_key(token_id)
    await kv.put(key, REVOKED_MARKER)
    log.info("token_revoked", jti=token_id)
    return key
