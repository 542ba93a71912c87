"""
Authentication routes for sign-in and callback handling.

This module exposes the OAuth 2.0 / OIDC authorization code flow against
the Keycloak identity broker. Both endpoints always answer with a 302.
"""

from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from marketplace.auth.federation import FederationOrchestrator
from marketplace.auth.session import bind_session
from marketplace.config import Settings
from marketplace.db import Connection
from marketplace.dependencies import (
    get_app_settings,
    get_connection,
    get_http_client,
    get_notifier,
)
from marketplace.notifications import Notifier


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
)


def get_orchestrator(
    settings: Settings = Depends(get_app_settings),
    connection: Connection = Depends(get_connection),
    notifier: Notifier = Depends(get_notifier),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> FederationOrchestrator:
    return FederationOrchestrator(settings, connection, notifier, http_client)


def _present(value: Optional[str]) -> Optional[str]:
    """Treat an empty query parameter the same as a missing one."""
    if value is None or value == "":
        return None
    return value


# =============================================================================
# Sign-in Endpoint
# =============================================================================

@auth_router.get("/sign-in", response_class=RedirectResponse)
async def sign_in(
    provider: Optional[str] = Query(None, description="Identity provider hint (github or idir)"),
    redirect_on_success: Optional[str] = Query(
        None, alias="redirectOnSuccess", description="Where to send the user after sign-in"
    ),
    orchestrator: FederationOrchestrator = Depends(get_orchestrator),
):
    """
    Initiate the OIDC sign-in by redirecting to Keycloak.

    Query Parameters:
        provider: Optional identity provider hint
        redirectOnSuccess: Optional post-login destination

    Returns:
        RedirectResponse to the Keycloak authorization endpoint
    """
    outcome = orchestrator.initiate(_present(provider), _present(redirect_on_success))
    return RedirectResponse(url=outcome.location, status_code=302)


# =============================================================================
# Callback Endpoint
# =============================================================================

@auth_router.get("/callback", response_class=RedirectResponse)
async def callback(
    request: Request,
    code: Optional[str] = Query(None, description="Authorization code from Keycloak"),
    redirect_on_success: Optional[str] = Query(
        None, alias="redirectOnSuccess", description="Must match the value sent on sign-in"
    ),
    orchestrator: FederationOrchestrator = Depends(get_orchestrator),
):
    """
    Handle the OAuth callback from Keycloak.

    On success the new session is bound to the signed session cookie and
    the user is redirected onward; on any failure the user lands on the
    auth failure notice and the cookie is left untouched.
    """
    outcome = await orchestrator.complete(_present(code), _present(redirect_on_success))
    if outcome.session is not None:
        bind_session(request, outcome.session)
    return RedirectResponse(url=outcome.location, status_code=302)
