"""
Account notifications.

Notifications are fire-and-forget: the caller schedules them and moves on.
A failed delivery is logged by the task's done callback and never reaches
the authentication flow. Delivery itself is a log record; mail transport
is handled outside this service.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Set

from marketplace.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    to: str
    subject: str
    body: str


def render_account_registered(user: User) -> Notification:
    return Notification(
        to=user.email,
        subject="Welcome to the Digital Marketplace",
        body=(
            f"Hello {user.name or user.idp_username}, your Digital Marketplace "
            "account has been created. Complete your profile to get started."
        ),
    )


def render_account_reactivated(user: User) -> Notification:
    return Notification(
        to=user.email,
        subject="Your Digital Marketplace account has been reactivated",
        body=(
            f"Hello {user.name or user.idp_username}, welcome back. Your account "
            "is active again and you can sign in as usual."
        ),
    )


class Notifier:
    def __init__(self):
        self._pending: Set[asyncio.Task] = set()

    def user_account_registered(self, user: User) -> None:
        if not user.email:
            return
        self._dispatch(render_account_registered(user))

    def account_reactivated(self, user: User) -> None:
        if not user.email:
            return
        self._dispatch(render_account_reactivated(user))

    async def deliver(self, notification: Notification) -> None:
        logger.info(
            f"Sending notification: {notification.subject}",
            extra={"to": notification.to},
        )

    def _dispatch(self, notification: Notification) -> None:
        task = asyncio.get_running_loop().create_task(self.deliver(notification))
        # Keep a reference until the task finishes.
        self._pending.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Notification delivery failed: {error}", exc_info=error)

    async def drain(self) -> None:
        """Wait for in-flight notifications, used on shutdown."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
