"""
Identity claims extracted from an exchanged token set.

Keycloak appends the upstream provider to the preferred username
(``handle@idir``, ``handle@github``); the tag decides the account type.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from marketplace.auth.exceptions import InvalidClaimsError, UnknownIdentityProviderError
from marketplace.auth.provider import TokenSet
from marketplace.models import ACCOUNT_TYPES, IdentityProvider, UserType


@dataclass(frozen=True)
class IdentityClaims:
    idp_username: str
    user_type: UserType
    name: str
    email: Optional[str]
    access_token: str
    refresh_token: str


def get_string_claim(claims: Dict[str, Any], name: str) -> Optional[str]:
    """Return a claim as a stripped string, or None when absent or blank."""
    value = claims.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def resolve_account_type(idp_username: str) -> UserType:
    """
    Map the provider tag of a username to an account type.

    Raises:
        UnknownIdentityProviderError: If the tag is not a federated provider
    """
    provider = IdentityProvider.from_username(idp_username)
    if not provider.is_recognized:
        raise UnknownIdentityProviderError(idp_username[idp_username.rfind("@") + 1:])
    return ACCOUNT_TYPES[provider]


def resolve_claims(tokens: TokenSet) -> IdentityClaims:
    """
    Validate a token set and extract the identity it describes.

    Raises:
        InvalidClaimsError: If the username claim or either token is missing
        UnknownIdentityProviderError: If the username carries an unknown provider tag
    """
    claims = tokens.claims()

    idp_username = get_string_claim(claims, "preferred_username")
    if idp_username is None or not tokens.access_token or not tokens.refresh_token:
        raise InvalidClaimsError("authentication failure - invalid claims")

    return IdentityClaims(
        idp_username=idp_username,
        user_type=resolve_account_type(idp_username),
        name=get_string_claim(claims, "name") or "",
        email=get_string_claim(claims, "email"),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )
