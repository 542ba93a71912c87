"""
Sign-in federation flow.

Composes the Keycloak client, claims resolution, account resolution and
session provisioning into the two request phases of a sign-in:

    IDLE --initiate--> AWAITING_PROVIDER_CALLBACK
    --callback--> EXCHANGING --> RESOLVING_CLAIMS --> RESOLVING_ACCOUNT
    --> PROVISIONING_SESSION --> REDIRECTING

Every outcome is a redirect. Failures in any state are logged and end at
the auth failure notice; nothing propagates to the transport layer.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from marketplace.auth.accounts import resolve_account
from marketplace.auth.claims import resolve_claims
from marketplace.auth.exceptions import (
    AccountDeactivatedError,
    FederationError,
    UnknownIdentityProviderError,
)
from marketplace.auth.provider import build_authorization_url, exchange_code_for_tokens
from marketplace.auth.session import provision_session
from marketplace.config import Settings
from marketplace.db import Connection
from marketplace.models import Session
from marketplace.notifications import Notifier

logger = logging.getLogger(__name__)

AUTH_FAILURE_LOCATION = "/notice/authFailure"
HOME_LOCATION = "/"
SIGN_UP_COMPLETE_LOCATION = "/sign-up/complete"


class FederationState(str, Enum):
    IDLE = "idle"
    AWAITING_PROVIDER_CALLBACK = "awaiting_provider_callback"
    EXCHANGING = "exchanging"
    RESOLVING_CLAIMS = "resolving_claims"
    RESOLVING_ACCOUNT = "resolving_account"
    PROVISIONING_SESSION = "provisioning_session"
    REDIRECTING = "redirecting"


@dataclass(frozen=True)
class FederationOutcome:
    location: str
    session: Optional[Session] = None

    @property
    def succeeded(self) -> bool:
        return self.session is not None


def is_safe_redirect(target: str, origin: str) -> bool:
    """
    Check that a post-login destination stays on this site.

    Accepts absolute paths (``/foo``) and URLs under ``origin``; rejects
    protocol-relative and foreign URLs.
    """
    if target.startswith("/"):
        return not target.startswith("//") and "\\" not in target
    return target == origin or target.startswith(f"{origin}/")


class FederationOrchestrator:
    def __init__(
        self,
        settings: Settings,
        connection: Connection,
        notifier: Notifier,
        http_client: httpx.AsyncClient,
    ):
        self.settings = settings
        self.connection = connection
        self.notifier = notifier
        self.http_client = http_client

    def initiate(
        self,
        provider: Optional[str] = None,
        redirect_on_success: Optional[str] = None,
    ) -> FederationOutcome:
        """Build the redirect to the Keycloak authorization endpoint."""
        try:
            location = build_authorization_url(self.settings, provider, redirect_on_success)
        except Exception as e:
            logger.error(
                f"authorization failed: {e}",
                extra={"state": FederationState.IDLE.value},
                exc_info=True,
            )
            return self._failure()

        logger.debug(
            "Redirecting to identity provider",
            extra={
                "state": FederationState.AWAITING_PROVIDER_CALLBACK.value,
                "provider": provider,
            },
        )
        return FederationOutcome(location=location)

    async def complete(
        self,
        code: Optional[str],
        redirect_on_success: Optional[str] = None,
    ) -> FederationOutcome:
        """
        Finish a sign-in from the provider callback.

        Args:
            code: Authorization code from the callback
            redirect_on_success: Post-login destination carried through the round trip

        Returns:
            Outcome with the redirect location and, on success, the new session
        """
        state = FederationState.EXCHANGING
        try:
            if not code:
                logger.warning("Callback received without an authorization code")
                return self._failure()

            tokens = await exchange_code_for_tokens(
                self.http_client, self.settings, code, redirect_on_success
            )

            state = FederationState.RESOLVING_CLAIMS
            claims = resolve_claims(tokens)

            state = FederationState.RESOLVING_ACCOUNT
            account = await resolve_account(self.connection, self.notifier, claims)

            state = FederationState.PROVISIONING_SESSION
            session = await provision_session(
                self.connection, account.user.id, claims.refresh_token
            )
        except UnknownIdentityProviderError as e:
            logger.error(
                "unknown identity provider",
                extra={"state": state.value, "provider": e.tag},
            )
            return self._failure()
        except AccountDeactivatedError as e:
            logger.warning(f"sign-in refused: {e}", extra={"state": state.value})
            return self._failure()
        except FederationError as e:
            logger.error(
                f"authorization failed: {e}",
                extra={"state": state.value, "error_type": type(e).__name__},
            )
            return self._failure()
        except Exception as e:
            logger.error(
                f"authorization failed with unexpected error: {e}",
                extra={"state": state.value, "error_type": type(e).__name__},
                exc_info=True,
            )
            return self._failure()

        location = self._success_location(redirect_on_success, account.is_new_account)
        logger.info(
            "Sign-in complete",
            extra={
                "state": FederationState.REDIRECTING.value,
                "user_id": str(account.user.id),
                "new_account": account.is_new_account,
            },
        )
        return FederationOutcome(location=location, session=session)

    def _success_location(self, redirect_on_success: Optional[str], is_new_account: bool) -> str:
        if redirect_on_success is not None:
            if is_safe_redirect(redirect_on_success, self.settings.ORIGIN):
                return redirect_on_success
            logger.warning(
                "Ignoring off-site redirectOnSuccess",
                extra={"redirect_on_success": redirect_on_success},
            )
        return SIGN_UP_COMPLETE_LOCATION if is_new_account else HOME_LOCATION

    @staticmethod
    def _failure() -> FederationOutcome:
        return FederationOutcome(location=AUTH_FAILURE_LOCATION)
