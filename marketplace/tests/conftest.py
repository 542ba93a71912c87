"""
Shared fixtures for the marketplace tests.

Keycloak is replaced by an ``httpx.MockTransport`` stub and the database by
an in-memory ``FakeConnection`` with the same interface as
``marketplace.db.Connection``.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set
from urllib.parse import parse_qs
from uuid import UUID, uuid4

import httpx
import jwt
import pytest
from fastapi.testclient import TestClient

from marketplace.auth.federation import FederationOrchestrator
from marketplace.config import Settings
from marketplace.main import create_app
from marketplace.models import Session, User, UserCreate, UserStatus, UserType
from marketplace.notifications import Notifier
from marketplace.validation import invalid, valid


TEST_SETTINGS = {
    "ORIGIN": "http://localhost:3000",
    "KEYCLOAK_URL": "https://sso.example.com",
    "KEYCLOAK_REALM": "digital-marketplace",
    "KEYCLOAK_CLIENT_ID": "marketplace-client",
    "KEYCLOAK_CLIENT_SECRET": "marketplace-client-secret",
    "SESSION_SECRET": "test-session-secret-0123456789abcdef",
    "DATABASE_URL": "sqlite+aiosqlite://",
}

SIGNING_KEY = "test-id-token-signing-key-0123456789abcdef"


# ============================================================================
# Token helpers
# ============================================================================

def make_id_token(**claims: Any) -> str:
    """Create an ID token with the given claims (HS256, test key)"""
    payload = {
        "iss": "https://sso.example.com/auth/realms/digital-marketplace",
        "aud": "marketplace-client",
        "sub": str(uuid4()),
        **claims,
    }
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


def make_token_response(
    preferred_username: Optional[str] = "alice@idir",
    name: Optional[str] = "Alice Example",
    email: Optional[str] = "alice@example.com",
    access_token: Optional[str] = "kc-access-token",
    refresh_token: Optional[str] = "kc-refresh-token",
) -> Dict[str, Any]:
    """Build a Keycloak token endpoint response body; None omits a field"""
    claims = {
        key: value
        for key, value in {
            "preferred_username": preferred_username,
            "name": name,
            "email": email,
        }.items()
        if value is not None
    }
    body: Dict[str, Any] = {
        "id_token": make_id_token(**claims),
        "token_type": "Bearer",
        "expires_in": 300,
        "refresh_expires_in": 1800,
        "scope": "openid email profile",
    }
    if access_token is not None:
        body["access_token"] = access_token
    if refresh_token is not None:
        body["refresh_token"] = refresh_token
    return body


# ============================================================================
# Keycloak stub
# ============================================================================

class KeycloakStub:
    """Answers token and logout requests and records every request"""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.token_status = 200
        self.token_body: Any = make_token_response()
        self.logout_status = 204
        self.error: Optional[Exception] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error

        if request.url.path.endswith("/token"):
            if isinstance(self.token_body, (bytes, str)):
                return httpx.Response(self.token_status, content=self.token_body)
            return httpx.Response(self.token_status, json=self.token_body)

        if request.url.path.endswith("/logout"):
            return httpx.Response(self.logout_status)

        return httpx.Response(404)

    def form(self, index: int = -1) -> Dict[str, str]:
        """Decode the form body of a recorded request"""
        parsed = parse_qs(self.requests[index].content.decode(), keep_blank_values=True)
        return {key: values[0] for key, values in parsed.items()}

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]


# ============================================================================
# Persistence fake
# ============================================================================

class FakeConnection:
    """In-memory stand-in for marketplace.db.Connection"""

    def __init__(self):
        self.users: Dict[UUID, User] = {}
        self.sessions: Dict[UUID, Session] = {}
        self.failing: Set[str] = set()

    def add_user(
        self,
        idp_username: str,
        user_type: UserType = UserType.GOVERNMENT,
        status: UserStatus = UserStatus.ACTIVE,
        email: str = "",
        name: str = "",
    ) -> User:
        now = datetime.now(timezone.utc)
        user = User(
            id=uuid4(),
            type=user_type,
            status=status,
            name=name,
            email=email,
            idp_username=idp_username,
            created_at=now,
            updated_at=now,
        )
        self.users[user.id] = user
        return user

    def sessions_for(self, user_id: UUID) -> List[Session]:
        return [s for s in self.sessions.values() if s.user_id == user_id]

    async def find_one_user_by_type_and_username(self, user_type, idp_username):
        if "find_one_user_by_type_and_username" in self.failing:
            return invalid("lookup failed")
        for user in self.users.values():
            if user.type == user_type and user.idp_username == idp_username:
                return valid(user)
        return valid(None)

    async def read_one_user(self, user_id):
        if "read_one_user" in self.failing:
            return invalid("read failed")
        return valid(self.users.get(user_id))

    async def create_user(self, user: UserCreate):
        if "create_user" in self.failing:
            return invalid("create failed")
        for existing in self.users.values():
            if existing.type == user.type and existing.idp_username == user.idp_username:
                return invalid("User already exists")
        created = self.add_user(
            user.idp_username,
            user_type=user.type,
            status=user.status,
            email=user.email,
            name=user.name,
        )
        return valid(created)

    async def update_user(self, user_id, status):
        if "update_user" in self.failing:
            return invalid("update failed")
        user = self.users.get(user_id)
        if user is None:
            return invalid("User not found")
        updated = user.model_copy(update={"status": status})
        self.users[user_id] = updated
        return valid(updated)

    async def create_session(self, access_token, user_id):
        if "create_session" in self.failing:
            return invalid("session failed")
        session = Session(
            id=uuid4(),
            user_id=user_id,
            access_token=access_token,
            created_at=datetime.now(timezone.utc),
        )
        self.sessions[session.id] = session
        return valid(session)

    async def read_one_session(self, session_id):
        if "read_one_session" in self.failing:
            return invalid("read failed")
        return valid(self.sessions.get(session_id))

    async def delete_session(self, session_id):
        if "delete_session" in self.failing:
            return invalid("delete failed")
        return valid(self.sessions.pop(session_id, None))


class RecordingNotifier(Notifier):
    """Notifier that records calls instead of scheduling deliveries"""

    def __init__(self):
        super().__init__()
        self.registered: List[User] = []
        self.reactivated: List[User] = []

    def user_account_registered(self, user: User) -> None:
        self.registered.append(user)

    def account_reactivated(self, user: User) -> None:
        self.reactivated.append(user)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings():
    """Settings independent of the process environment"""
    return Settings(_env_file=None, **TEST_SETTINGS)


@pytest.fixture
def keycloak():
    return KeycloakStub()


@pytest.fixture
def http_client(keycloak):
    return httpx.AsyncClient(transport=httpx.MockTransport(keycloak.handler))


@pytest.fixture
def connection():
    return FakeConnection()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def orchestrator(settings, connection, notifier, http_client):
    return FederationOrchestrator(settings, connection, notifier, http_client)


@pytest.fixture
def app(settings, connection, notifier, http_client):
    return create_app(
        settings,
        connection=connection,
        http_client=http_client,
        notifier=notifier,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
