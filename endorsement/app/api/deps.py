"""
Request dependencies: authentication and shared services.

Two credentials are accepted by the API:

- Tenant API key (``x-api-key``) for server-to-server calls.
- Session token for claimant and endorser form flows. It is read from the
  ``Authorization: Bearer`` header, then the ``token`` query parameter, then
  the ``token`` cookie. The first one present wins.
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Callable, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from endorsement.app.config import Settings
from endorsement.app.schemas.claim_state import ClaimRole, ClaimState
from endorsement.app.services import tokens
from endorsement.app.services.issuance import EndorsementIssuer
from endorsement.app.services.verification import TamperVerifier
from endorsement.app.services.webhook import WebhookDispatcher
from endorsement.app.tenants import TenantConfig, TenantRegistry

logger = logging.getLogger("endorsement.api")

BEARER_PREFIX = "Bearer "


# =============================================================================
# Shared services
# =============================================================================

def get_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise RuntimeError("settings not initialized")
    return settings


def get_registry(request: Request) -> TenantRegistry:
    return request.app.state.tenants


def get_issuer(request: Request) -> EndorsementIssuer:
    return request.app.state.issuer


def get_verifier(request: Request) -> TamperVerifier:
    return request.app.state.verifier


def get_dispatcher(request: Request) -> WebhookDispatcher:
    return request.app.state.dispatcher


SettingsDep = Annotated[Settings, Depends(get_settings)]
RegistryDep = Annotated[TenantRegistry, Depends(get_registry)]


# =============================================================================
# Tenant API key
# =============================================================================

def get_api_tenant(
    registry: RegistryDep,
    x_api_key: Annotated[
        Optional[str],
        Header(description="Tenant API key"),
    ] = None,
) -> TenantConfig:
    tenant = registry.authenticate(x_api_key)
    if tenant is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
    return tenant


# =============================================================================
# Session token
# =============================================================================

@dataclass(frozen=True)
class Session:
    token: str
    state: ClaimState


def extract_bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization")
    if authorization and authorization.startswith(BEARER_PREFIX):
        token = authorization[len(BEARER_PREFIX):].strip()
        if token:
            return token

    token = request.query_params.get("token")
    if token:
        return token

    return request.cookies.get("token") or None


def get_session(request: Request, settings: SettingsDep) -> Session:
    token = extract_bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing token",
        )

    try:
        state = tokens.verify(token, secret=settings.signing_secret.get_secret_value())
    except tokens.TokenExpired:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
        )
    except tokens.TokenInvalid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    return Session(token=token, state=state)


def require_role(role: ClaimRole) -> Callable[[Session], Session]:
    def dependency(session: Annotated[Session, Depends(get_session)]) -> Session:
        try:
            tokens.require_role(session.state, role)
        except tokens.RoleMismatch:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This action requires the {role.value} role",
            )
        return session

    return dependency


ClaimantSession = Annotated[Session, Depends(require_role(ClaimRole.CLAIMANT))]
EndorserSession = Annotated[Session, Depends(require_role(ClaimRole.ENDORSER))]


def require_claim(session: Session, claim_id: str) -> None:
    """Reject a token issued for a different claim than the one addressed."""
    if session.state.claim_id != claim_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token does not grant access to this claim",
        )


def session_tenant(session: Session, registry: TenantRegistry) -> TenantConfig:
    tenant = registry.get(session.state.tenant)
    if tenant is None:
        logger.warning(
            "session_tenant_unknown",
            extra={"claim_id": session.state.claim_id, "tenant": session.state.tenant},
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unknown tenant",
        )
    return tenant
