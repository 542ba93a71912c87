"""
Session Provisioning Module
===========================

Creates the persisted session at the end of a successful sign-in and
resolves the current session from the signed session cookie.

The cookie (Starlette ``SessionMiddleware``) only carries the session id;
the provider refresh token stays in the database.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, Request

from marketplace.auth.exceptions import SessionProvisioningError
from marketplace.db import Connection
from marketplace.dependencies import get_connection
from marketplace.models import Session
from marketplace.validation import Invalid

logger = logging.getLogger(__name__)

SESSION_ID_KEY = "session_id"


async def provision_session(connection: Connection, user_id: UUID, refresh_token: str) -> Session:
    """
    Persist a new session for a resolved user.

    Args:
        connection: Persistence collaborator
        user_id: Owner of the session
        refresh_token: Refresh token issued by the identity provider

    Returns:
        The created session

    Raises:
        SessionProvisioningError: If the session could not be stored
    """
    result = await connection.create_session(access_token=refresh_token, user_id=user_id)
    if isinstance(result, Invalid):
        raise SessionProvisioningError(f"Session creation failed: {result.error}")

    logger.debug(
        "Created session",
        extra={"session_id": str(result.value.id), "user_id": str(user_id)},
    )
    return result.value


def bind_session(request: Request, session: Session) -> None:
    request.session[SESSION_ID_KEY] = str(session.id)


def unbind_session(request: Request) -> None:
    request.session.pop(SESSION_ID_KEY, None)


# =============================================================================
# FastAPI Dependencies
# =============================================================================

async def get_current_session(
    request: Request,
    connection: Connection = Depends(get_connection),
) -> Optional[Session]:
    """
    FastAPI dependency resolving the session bound to the request cookie.

    Returns None when the cookie carries no session id, a malformed id, or
    the id of a session that no longer exists.
    """
    raw_id = request.session.get(SESSION_ID_KEY)
    if not raw_id:
        return None

    try:
        session_id = UUID(str(raw_id))
    except ValueError:
        logger.warning("Malformed session id in cookie")
        unbind_session(request)
        return None

    result = await connection.read_one_session(session_id)
    if isinstance(result, Invalid):
        return None

    if result.value is None:
        unbind_session(request)
    return result.value
