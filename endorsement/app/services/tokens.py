"""
Session tokens.

A session token is an HS256 JWT whose private claims are the entire
``ClaimState``. The token is the only place claim state lives between
requests, so verification is strict:

- signature first, then expiry (PyJWT order)
- ``aud`` must equal the ``tenant`` claim
- the private claims must validate as a ``ClaimState``

A valid signature on an expired token is reported as ``TokenExpired``;
every other failure is ``TokenInvalid``. Callers map both to HTTP 401.

Nonces are generated per mint and never checked for reuse. Tokens are
replayable until they expire.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import jwt
from pydantic import ValidationError

from endorsement.app.schemas.claim_state import ClaimRole, ClaimState

logger = logging.getLogger("endorsement.tokens")

ALGORITHM = "HS256"
_REGISTERED_CLAIMS = ("iss", "aud", "iat", "exp")


class TokenError(RuntimeError):
    """Base class for session token failures."""


class TokenExpired(TokenError):
    """Raised when a token's signature is valid but it has expired."""


class TokenInvalid(TokenError):
    """Raised when a token is malformed, forged or carries an invalid state."""


class RoleMismatch(TokenError):
    """Raised when a verified state does not carry the required role."""


def mint(
    state: ClaimState,
    *,
    secret: str,
    expiry_days: int,
    issuer: str,
    now: Optional[datetime] = None,
) -> Tuple[str, datetime]:
    """
    Sign ``state`` into a new token.

    A fresh nonce is generated on every call. Returns the token and its
    expiry time.
    """
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(days=expiry_days)

    claims = state.to_claims()
    claims["nonce"] = uuid.uuid4().hex
    claims.update(
        iss=issuer,
        aud=state.tenant,
        iat=int(issued_at.timestamp()),
        exp=int(expires_at.timestamp()),
    )

    token = jwt.encode(claims, secret, algorithm=ALGORITHM)

    logger.debug(
        "session_token_minted",
        extra={
            "claim_id": state.claim_id,
            "role": state.role.value,
            "expires_at": expires_at.isoformat(),
        },
    )
    return token, expires_at


def verify(token: str, *, secret: str) -> ClaimState:
    """
    Verify a token and return the claim state it carries.

    Raises:
        TokenExpired: valid signature, past ``exp``.
        TokenInvalid: anything else.
    """
    if not token:
        raise TokenInvalid("empty token")

    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            options={
                "require": ["exp", "iat", "aud"],
                "verify_aud": False,
            },
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpired("token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenInvalid(f"token invalid: {exc}") from exc

    if claims.get("aud") != claims.get("tenant"):
        raise TokenInvalid("token audience does not match tenant")

    issued_at = claims.get("iat")
    expires_at = claims.get("exp")
    for name in _REGISTERED_CLAIMS:
        claims.pop(name, None)

    try:
        return ClaimState.model_validate(
            {
                **claims,
                "issued_at": datetime.fromtimestamp(issued_at, timezone.utc),
                "expires_at": datetime.fromtimestamp(expires_at, timezone.utc),
            }
        )
    except (ValidationError, TypeError, ValueError, OverflowError) as exc:
        raise TokenInvalid("token claims do not describe a claim state") from exc


def require_role(state: ClaimState, role: ClaimRole) -> ClaimState:
    """Capability gate: reject a state whose role does not match."""
    if state.role != role:
        raise RoleMismatch(
            f"operation requires role '{role.value}', token carries '{state.role.value}'"
        )
    return state
