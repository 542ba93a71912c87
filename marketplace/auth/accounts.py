"""
Account resolution for a federated identity.

Maps (account type, provider-qualified username) to a persisted user:
first sign-in creates the account, a self-deactivated account is
reactivated, and an account deactivated by an administrator is refused.
"""

import logging
from dataclasses import dataclass

from marketplace.auth.claims import IdentityClaims
from marketplace.auth.exceptions import AccountDeactivatedError, AccountResolutionError
from marketplace.db import Connection
from marketplace.models import User, UserCreate, UserStatus
from marketplace.notifications import Notifier
from marketplace.validation import Invalid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountResolution:
    user: User
    is_new_account: bool


async def resolve_account(
    connection: Connection,
    notifier: Notifier,
    claims: IdentityClaims,
) -> AccountResolution:
    """
    Find, create, or reactivate the user behind a set of identity claims.

    Args:
        connection: Persistence collaborator
        notifier: Notification collaborator
        claims: Resolved identity claims

    Returns:
        The resolved user and whether it was created by this call

    Raises:
        AccountResolutionError: If any persistence operation fails
        AccountDeactivatedError: If an administrator deactivated the account
    """
    lookup = await connection.find_one_user_by_type_and_username(
        claims.user_type, claims.idp_username
    )
    if isinstance(lookup, Invalid):
        raise AccountResolutionError(f"User lookup failed: {lookup.error}")

    user = lookup.value

    if user is None:
        created = await connection.create_user(
            UserCreate(
                type=claims.user_type,
                status=UserStatus.ACTIVE,
                name=claims.name,
                email=claims.email if claims.email is not None else "",
                job_title="",
                idp_username=claims.idp_username,
            )
        )
        if isinstance(created, Invalid):
            raise AccountResolutionError(f"User creation failed: {created.error}")

        logger.info(
            "Registered new account",
            extra={"user_id": str(created.value.id), "user_type": claims.user_type.value},
        )
        if claims.email is not None:
            notifier.user_account_registered(created.value)
        return AccountResolution(user=created.value, is_new_account=True)

    if user.status == UserStatus.INACTIVE_BY_ADMIN:
        raise AccountDeactivatedError(f"Account {user.id} was deactivated by an administrator")

    if user.status == UserStatus.INACTIVE_BY_USER:
        updated = await connection.update_user(user.id, UserStatus.ACTIVE)
        if isinstance(updated, Invalid):
            raise AccountResolutionError(f"User reactivation failed: {updated.error}")

        logger.info("Reactivated account", extra={"user_id": str(user.id)})
        notifier.account_reactivated(updated.value)
        user = updated.value

    return AccountResolution(user=user, is_new_account=False)
