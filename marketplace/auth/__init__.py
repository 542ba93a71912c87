"""
Authentication Package

This package handles sign-in for the marketplace through the Keycloak
identity broker, which federates IDIR (public sector) and GitHub (vendors).

Modules:
- provider: Authorization URL, token exchange and revocation against Keycloak
- claims: Identity claims and account type from an exchanged token set
- accounts: Lookup, creation and reactivation of the persisted user
- session: Session provisioning and the current-session dependency
- federation: The sign-in state machine tying the above together
- routes: Public endpoints (/auth/sign-in, /auth/callback)

The sign-in flow:
1. Browser hits /auth/sign-in and is redirected to Keycloak
2. User authenticates with the upstream provider
3. Keycloak redirects back to /auth/callback with an authorization code
4. The code is exchanged, the account resolved and a session created
5. The browser is redirected onward with the session bound to its cookie
"""

from .routes import auth_router

__all__ = [
    "auth_router",
]
