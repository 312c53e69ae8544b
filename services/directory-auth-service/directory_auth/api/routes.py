"""HTTP route definitions for the directory auth service."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel

from schemas import PrincipalSummary

from ..domain.contracts import AuthenticationResult
from ..domain.email_address import EmailAddress, EmailAddressValidationError
from ..domain.errors import ConfigurationError
from ..domain.identity import ActingIdentity
from ..domain.principal import Principal
from ..domain.service import CredentialResolver
from ..security.tokens import issue_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


def _display_email(principal: Principal) -> str | None:
    if not principal.email_address:
        return None
    try:
        return EmailAddress.parse(principal.email_address).address
    except EmailAddressValidationError:
        logger.warning("principal [%s] has a malformed stored email address", principal.username)
        return None


def principal_summary(principal: Principal) -> PrincipalSummary:
    """Build the shared response model from the domain principal."""
    return PrincipalSummary(
        principal_id=principal.principal_id,
        username=principal.username,
        type=principal.type.value,
        created_at=principal.created_at,
        first_name=principal.first_name,
        last_name=principal.last_name,
        title=principal.title,
        email_address=_display_email(principal),
        phone_number=principal.phone_number,
        teams_ids=principal.teams_ids,
        default_team_id=principal.default_team_id,
        portals_ids=principal.portals_ids,
        portal_roles_ids=principal.portal_roles_ids,
    )


class LoginRequest(BaseModel):
    """Credentials submitted for a password login."""

    username: str
    password: str | None = None
    portal: bool = False


class LoginResponse(BaseModel):
    """Session token issued after a successful login."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    principal: PrincipalSummary


def get_resolver(request: Request) -> CredentialResolver:
    """Resolve the `CredentialResolver` stored on the FastAPI application state."""
    resolver: CredentialResolver = request.app.state.credential_resolver
    return resolver


def _authentication_failed() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="authentication failed",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _run(resolve) -> AuthenticationResult:
    try:
        return resolve()
    except ConfigurationError as exc:
        logger.error("authentication aborted by configuration error: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="authentication unavailable"
        ) from exc


@router.post("/auth/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    request: Request,
    resolver: CredentialResolver = Depends(get_resolver),
) -> LoginResponse:
    """Authenticate with username and password and issue a session token."""
    remote_address = request.client.host if request.client else None
    result = _run(
        lambda: resolver.authenticate(
            payload.username,
            payload.password,
            portal=payload.portal,
            remote_address=remote_address,
            identity=ActingIdentity(),
        )
    )
    if not result.succeeded:
        logger.info("login for [%s] failed: %s", payload.username, result.outcome.value)
        raise _authentication_failed()

    principal = result.principal
    access_token, expires_in = issue_access_token(
        subject=principal.principal_id,
        username=principal.username,
        principal_type=principal.type.value,
        portal=payload.portal,
    )
    return LoginResponse(
        access_token=access_token,
        expires_in=expires_in,
        principal=principal_summary(principal),
    )


@router.get("/auth/session", response_model=PrincipalSummary)
def session(
    request: Request,
    authorization: str | None = Header(default=None),
    username: str = Header(..., alias="X-Auth-Username"),
    resolver: CredentialResolver = Depends(get_resolver),
) -> PrincipalSummary:
    """Return the principal behind a session token issued by :func:`login`."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _authentication_failed()

    remote_address = request.client.host if request.client else None
    result = _run(
        lambda: resolver.authenticate(username, None, token.strip(), remote_address=remote_address)
    )
    if not result.succeeded:
        raise _authentication_failed()
    return principal_summary(result.principal)
