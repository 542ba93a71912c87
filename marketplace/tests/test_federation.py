"""
Federation Flow Tests

Drives the orchestrator through both sign-in phases against the Keycloak
stub and the in-memory connection, checking every redirect outcome.
"""

import logging
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from conftest import make_token_response
from marketplace.auth.federation import (
    AUTH_FAILURE_LOCATION,
    HOME_LOCATION,
    SIGN_UP_COMPLETE_LOCATION,
    is_safe_redirect,
)
from marketplace.models import UserStatus, UserType


# ============================================================================
# Initiate
# ============================================================================

class TestInitiate:

    def test_redirects_to_authorization_endpoint(self, orchestrator, settings):
        outcome = orchestrator.initiate()

        assert outcome.location.startswith(settings.authorization_endpoint + "?")
        assert outcome.session is None

    def test_carries_hint_and_redirect_target(self, orchestrator):
        outcome = orchestrator.initiate("github", "/foo")

        params = parse_qs(urlsplit(outcome.location).query)
        assert params["kc_idp_hint"] == ["github"]
        assert params["redirect_uri"] == [
            "http://localhost:3000/auth/callback?redirectOnSuccess=%2Ffoo"
        ]


# ============================================================================
# Complete
# ============================================================================

class TestCompleteSuccess:

    @pytest.mark.asyncio
    async def test_new_account_goes_to_sign_up_complete(self, orchestrator, connection):
        outcome = await orchestrator.complete("auth-code")

        assert outcome.location == SIGN_UP_COMPLETE_LOCATION
        assert outcome.succeeded
        user = connection.users[outcome.session.user_id]
        assert user.idp_username == "alice@idir"
        assert user.type == UserType.GOVERNMENT

    @pytest.mark.asyncio
    async def test_session_stores_refresh_token(self, orchestrator, connection):
        outcome = await orchestrator.complete("auth-code")

        assert outcome.session.access_token == "kc-refresh-token"
        assert connection.sessions[outcome.session.id] == outcome.session

    @pytest.mark.asyncio
    async def test_existing_account_goes_home(self, orchestrator, connection):
        existing = connection.add_user("alice@idir")

        outcome = await orchestrator.complete("auth-code")

        assert outcome.location == HOME_LOCATION
        assert outcome.session.user_id == existing.id

    @pytest.mark.asyncio
    async def test_second_sign_in_reuses_user_with_new_session(self, orchestrator, connection):
        first = await orchestrator.complete("code-1")
        second = await orchestrator.complete("code-2")

        assert first.location == SIGN_UP_COMPLETE_LOCATION
        assert second.location == HOME_LOCATION
        assert second.session.user_id == first.session.user_id
        assert second.session.id != first.session.id
        assert len(connection.users) == 1
        assert len(connection.sessions_for(first.session.user_id)) == 2

    @pytest.mark.asyncio
    async def test_vendor_sign_in(self, orchestrator, connection, keycloak):
        keycloak.token_body = make_token_response(preferred_username="bob@github")

        outcome = await orchestrator.complete("auth-code")

        assert connection.users[outcome.session.user_id].type == UserType.VENDOR

    @pytest.mark.asyncio
    async def test_reactivates_self_deactivated_account(self, orchestrator, connection, notifier):
        existing = connection.add_user("alice@idir", status=UserStatus.INACTIVE_BY_USER)

        outcome = await orchestrator.complete("auth-code")

        assert outcome.location == HOME_LOCATION
        assert connection.users[existing.id].status == UserStatus.ACTIVE
        assert len(notifier.reactivated) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("existing", [False, True])
    async def test_redirect_on_success_wins(self, orchestrator, connection, keycloak, existing):
        if existing:
            connection.add_user("alice@idir")

        outcome = await orchestrator.complete("auth-code", "/foo")

        assert outcome.location == "/foo"
        assert keycloak.form()["redirect_uri"] == (
            "http://localhost:3000/auth/callback?redirectOnSuccess=%2Ffoo"
        )

    @pytest.mark.asyncio
    async def test_same_origin_url_is_allowed(self, orchestrator):
        outcome = await orchestrator.complete("auth-code", "http://localhost:3000/opportunities")

        assert outcome.location == "http://localhost:3000/opportunities"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "target", ["https://evil.example.com/", "//evil.example.com", "/\\evil.example.com"]
    )
    async def test_off_site_redirect_is_ignored(self, orchestrator, target, caplog):
        with caplog.at_level(logging.WARNING, logger="marketplace.auth.federation"):
            outcome = await orchestrator.complete("auth-code", target)

        assert outcome.succeeded
        assert outcome.location == SIGN_UP_COMPLETE_LOCATION
        assert "Ignoring off-site redirectOnSuccess" in caplog.text


class TestCompleteFailure:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [None, ""])
    async def test_missing_code(self, orchestrator, keycloak, code):
        outcome = await orchestrator.complete(code)

        assert outcome.location == AUTH_FAILURE_LOCATION
        assert not outcome.succeeded
        assert keycloak.requests == []

    @pytest.mark.asyncio
    async def test_token_endpoint_error(self, orchestrator, connection, keycloak):
        keycloak.token_status = 400

        outcome = await orchestrator.complete("auth-code")

        assert outcome.location == AUTH_FAILURE_LOCATION
        assert connection.users == {}
        assert connection.sessions == {}

    @pytest.mark.asyncio
    async def test_network_error(self, orchestrator, keycloak):
        keycloak.error = httpx.ConnectError("connection refused")

        outcome = await orchestrator.complete("auth-code")

        assert outcome.location == AUTH_FAILURE_LOCATION

    @pytest.mark.asyncio
    async def test_invalid_claims(self, orchestrator, connection, keycloak):
        keycloak.token_body = make_token_response(refresh_token=None)

        outcome = await orchestrator.complete("auth-code")

        assert outcome.location == AUTH_FAILURE_LOCATION
        assert connection.users == {}

    @pytest.mark.asyncio
    async def test_unknown_identity_provider_is_logged(
        self, orchestrator, connection, keycloak, caplog
    ):
        keycloak.token_body = make_token_response(preferred_username="carol@unknown")

        with caplog.at_level(logging.ERROR, logger="marketplace.auth.federation"):
            outcome = await orchestrator.complete("auth-code")

        assert outcome.location == AUTH_FAILURE_LOCATION
        assert connection.users == {}
        record = next(r for r in caplog.records if r.getMessage() == "unknown identity provider")
        assert record.provider == "unknown"
        assert record.state == "resolving_claims"

    @pytest.mark.asyncio
    async def test_admin_deactivated_account(self, orchestrator, connection):
        existing = connection.add_user("alice@idir", status=UserStatus.INACTIVE_BY_ADMIN)

        outcome = await orchestrator.complete("auth-code", "/foo")

        assert outcome.location == AUTH_FAILURE_LOCATION
        assert connection.sessions == {}
        assert connection.users[existing.id].status == UserStatus.INACTIVE_BY_ADMIN

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method",
        ["find_one_user_by_type_and_username", "create_user", "create_session"],
    )
    async def test_persistence_failure(self, orchestrator, connection, method):
        connection.failing.add(method)

        outcome = await orchestrator.complete("auth-code")

        assert outcome.location == AUTH_FAILURE_LOCATION
        assert connection.sessions == {}

    @pytest.mark.asyncio
    async def test_reactivation_failure(self, orchestrator, connection):
        connection.add_user("alice@idir", status=UserStatus.INACTIVE_BY_USER)
        connection.failing.add("update_user")

        outcome = await orchestrator.complete("auth-code")

        assert outcome.location == AUTH_FAILURE_LOCATION
        assert connection.sessions == {}

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, orchestrator, connection, caplog):
        connection.create_session = AsyncMock(side_effect=RuntimeError("boom"))

        with caplog.at_level(logging.ERROR, logger="marketplace.auth.federation"):
            outcome = await orchestrator.complete("auth-code")

        assert outcome.location == AUTH_FAILURE_LOCATION
        assert "boom" in caplog.text


class TestIsSafeRedirect:

    @pytest.mark.parametrize(
        "target",
        ["/", "/foo", "/foo?bar=1", "http://localhost:3000", "http://localhost:3000/foo"],
    )
    def test_accepts_local_targets(self, target):
        assert is_safe_redirect(target, "http://localhost:3000")

    @pytest.mark.parametrize(
        "target",
        [
            "//evil.example.com",
            "/\\evil.example.com",
            "https://evil.example.com",
            "http://localhost:3000.evil.example.com",
            "javascript:alert(1)",
            "foo",
        ],
    )
    def test_rejects_foreign_targets(self, target):
        assert not is_safe_redirect(target, "http://localhost:3000")
