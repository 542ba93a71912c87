"""
Current-session endpoints.

Reads the session bound to the signed cookie and signs the user out by
deleting it and ending the matching Keycloak session.
"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status

from marketplace.auth.provider import revoke_refresh_token
from marketplace.auth.session import get_current_session, unbind_session
from marketplace.config import Settings
from marketplace.db import Connection
from marketplace.dependencies import get_app_settings, get_connection, get_http_client
from marketplace.models import Session, SessionPayload, SessionResponse, UserProfile
from marketplace.validation import Invalid

logger = logging.getLogger(__name__)

sessions_router = APIRouter(
    prefix="/api/sessions",
    tags=["sessions"],
)


@sessions_router.get("/current", response_model=SessionResponse)
async def read_current_session(
    session: Optional[Session] = Depends(get_current_session),
    connection: Connection = Depends(get_connection),
) -> SessionResponse:
    """Return the signed-in user's session, or a null session."""
    if session is None:
        return SessionResponse(session=None)

    result = await connection.read_one_user(session.user_id)
    if isinstance(result, Invalid) or result.value is None:
        return SessionResponse(session=None)

    return SessionResponse(
        session=SessionPayload(
            id=session.id,
            user=UserProfile.from_user(result.value),
            created_at=session.created_at,
        )
    )


@sessions_router.delete("/current", response_model=SessionResponse)
async def delete_current_session(
    request: Request,
    session: Optional[Session] = Depends(get_current_session),
    connection: Connection = Depends(get_connection),
    settings: Settings = Depends(get_app_settings),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> SessionResponse:
    """
    Sign out.

    Deletes the persisted session, clears the cookie and revokes the
    provider refresh token. Revocation is best effort.
    """
    if session is None:
        return SessionResponse(session=None)

    result = await connection.delete_session(session.id)
    if isinstance(result, Invalid):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to sign out",
        )

    unbind_session(request)

    deleted = result.value
    if deleted is not None:
        revoked = await revoke_refresh_token(http_client, settings, deleted.access_token)
        logger.info(
            "Signed out",
            extra={"session_id": str(deleted.id), "provider_session_revoked": revoked},
        )

    return SessionResponse(session=None)
