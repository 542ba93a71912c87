"""
Keycloak client for the OAuth 2.0 / OIDC authorization code flow.

Keycloak brokers two upstream identity providers (IDIR and GitHub). This
module builds the authorization redirect, exchanges the authorization code
for a token set, and revokes refresh tokens on sign-out.
"""

import logging
import secrets
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
import jwt
from pydantic import BaseModel, ConfigDict, ValidationError

from marketplace.auth.exceptions import InvalidClaimsError, TokenExchangeError
from marketplace.config import Settings
from marketplace.models import IdentityProvider
from marketplace.validation import Invalid, parse_json_safely

logger = logging.getLogger(__name__)

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


# =============================================================================
# Token Set
# =============================================================================

class TokenSet(BaseModel):
    """Token endpoint response."""
    model_config = ConfigDict(extra="allow")

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    refresh_expires_in: Optional[int] = None
    scope: Optional[str] = None

    def claims(self) -> Dict[str, Any]:
        """
        Decode the ID token payload.

        The token arrives over the back channel straight from Keycloak, so
        the signature is not re-verified here.

        Raises:
            InvalidClaimsError: If the ID token is missing or malformed
        """
        if not self.id_token:
            raise InvalidClaimsError("Token set has no id_token")
        try:
            return jwt.decode(self.id_token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            raise InvalidClaimsError(f"Unable to decode id_token: {e}") from e


# =============================================================================
# Authorization Request
# =============================================================================

def generate_nonce() -> str:
    return secrets.token_urlsafe(32)


def build_callback_url(settings: Settings, redirect_on_success: Optional[str] = None) -> str:
    """
    Build the callback URL registered with Keycloak.

    Keycloak compares redirect_uri on the authorization and token requests
    byte for byte, so both requests must build it through this function.

    Args:
        settings: Application settings
        redirect_on_success: Optional post-login destination carried through the round trip

    Returns:
        Callback URL, with a redirectOnSuccess query parameter when a target is given
    """
    if redirect_on_success is None:
        return settings.callback_url
    return f"{settings.callback_url}?{urlencode({'redirectOnSuccess': redirect_on_success})}"


def build_authorization_url(
    settings: Settings,
    provider: Optional[str] = None,
    redirect_on_success: Optional[str] = None,
    nonce: Optional[str] = None,
) -> str:
    """
    Build the Keycloak authorization URL for the sign-in redirect.

    Args:
        settings: Application settings
        provider: Optional identity provider hint; only recognised providers are forwarded
        redirect_on_success: Optional post-login destination
        nonce: Nonce to embed; a fresh one is generated when omitted

    Returns:
        Authorization endpoint URL with URL-encoded query parameters
    """
    params = {
        "client_id": settings.KEYCLOAK_CLIENT_ID,
        "client_secret": settings.KEYCLOAK_CLIENT_SECRET,
        "redirect_uri": build_callback_url(settings, redirect_on_success),
        "response_mode": "query",
        "response_type": "code",
        "scope": "openid",
        "nonce": nonce or generate_nonce(),
    }

    hint = IdentityProvider.from_tag(provider)
    if hint.is_recognized:
        params["kc_idp_hint"] = hint.value

    return f"{settings.authorization_endpoint}?{urlencode(params)}"


# =============================================================================
# Token Exchange
# =============================================================================

async def exchange_code_for_tokens(
    client: httpx.AsyncClient,
    settings: Settings,
    code: str,
    redirect_on_success: Optional[str] = None,
) -> TokenSet:
    """
    Exchange an authorization code for a token set.

    Args:
        client: Shared HTTP client
        settings: Application settings
        code: Authorization code from the callback
        redirect_on_success: Same value that was sent on the authorization request

    Returns:
        Parsed token set

    Raises:
        TokenExchangeError: On network errors, timeouts, any status other
            than 200, or a body that is not a JSON object
    """
    payload = {
        "code": code,
        "grant_type": "authorization_code",
        "client_id": settings.KEYCLOAK_CLIENT_ID,
        "client_secret": settings.KEYCLOAK_CLIENT_SECRET,
        "scope": "openid",
        "redirect_uri": build_callback_url(settings, redirect_on_success),
    }

    try:
        response = await client.post(
            settings.token_endpoint,
            data=payload,
            headers=FORM_HEADERS,
            timeout=settings.TOKEN_EXCHANGE_TIMEOUT_SECONDS,
        )
    except httpx.HTTPError as e:
        raise TokenExchangeError(f"Token request failed: {e!r}") from e

    if response.status_code != 200:
        raise TokenExchangeError(f"Token endpoint returned HTTP {response.status_code}")

    body = parse_json_safely(response.content)
    if isinstance(body, Invalid) or not isinstance(body.value, dict):
        raise TokenExchangeError("Token endpoint returned a malformed body")

    try:
        return TokenSet.model_validate(body.value)
    except ValidationError as e:
        raise TokenExchangeError(f"Token endpoint returned an invalid token set: {e}") from e


async def revoke_refresh_token(
    client: httpx.AsyncClient,
    settings: Settings,
    refresh_token: str,
) -> bool:
    """
    End the Keycloak session behind a refresh token.

    Returns:
        True if Keycloak accepted the request, False otherwise
    """
    payload = {
        "client_id": settings.KEYCLOAK_CLIENT_ID,
        "client_secret": settings.KEYCLOAK_CLIENT_SECRET,
        "refresh_token": refresh_token,
    }

    try:
        response = await client.post(
            settings.logout_endpoint,
            data=payload,
            headers=FORM_HEADERS,
            timeout=settings.TOKEN_EXCHANGE_TIMEOUT_SECONDS,
        )
    except httpx.HTTPError as e:
        logger.warning(f"Refresh token revocation failed: {e!r}")
        return False

    if not response.is_success:
        logger.warning(f"Logout endpoint returned HTTP {response.status_code}")
        return False

    return True
