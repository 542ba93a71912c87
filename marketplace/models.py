"""
Data Models Module

This module defines the enumerations, domain records and Pydantic models
for request/response validation used throughout the service.

Models are organized by functional area:
- Account enumerations (user type, status, identity providers)
- Domain records (users, sessions) mirrored from the database
- API response models (session payloads, health, errors)
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Account Enumerations
# ============================================================================

class UserType(str, Enum):
    """Account category, derived from the identity provider that authenticated the user."""
    GOVERNMENT = "GOV"
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE_BY_USER = "INACTIVE_USER"
    INACTIVE_BY_ADMIN = "INACTIVE_ADMIN"


class IdentityProvider(str, Enum):
    """
    Upstream identity providers federated by the Keycloak realm.

    UNRECOGNIZED stands for any tag outside the closed set; it is never a
    valid sign-in hint and never maps to an account type.
    """
    IDIR = "idir"
    GITHUB = "github"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def from_tag(cls, tag: Optional[str]) -> "IdentityProvider":
        for provider in (cls.IDIR, cls.GITHUB):
            if tag == provider.value:
                return provider
        return cls.UNRECOGNIZED

    @classmethod
    def from_username(cls, idp_username: str) -> "IdentityProvider":
        """Resolve the provider tag appended to a username as ``handle@tag``."""
        _, separator, tag = idp_username.rpartition("@")
        if not separator:
            return cls.UNRECOGNIZED
        return cls.from_tag(tag)

    @property
    def is_recognized(self) -> bool:
        return self is not IdentityProvider.UNRECOGNIZED


ACCOUNT_TYPES: Dict[IdentityProvider, UserType] = {
    IdentityProvider.IDIR: UserType.GOVERNMENT,
    IdentityProvider.GITHUB: UserType.VENDOR,
}


# ============================================================================
# Domain Records
# ============================================================================

class User(BaseModel):
    """Persisted marketplace account."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: UserType
    status: UserStatus
    name: str = ""
    email: str = ""
    job_title: str = ""
    idp_username: str
    accepted_terms_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserCreate(BaseModel):
    type: UserType
    status: UserStatus = UserStatus.ACTIVE
    name: str = ""
    email: str = ""
    job_title: str = ""
    idp_username: str


class Session(BaseModel):
    """
    Persisted sign-in session.

    ``access_token`` holds the refresh token issued by the identity provider;
    it is needed to revoke the provider session on sign-out.
    """
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    access_token: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ============================================================================
# API Response Models
# ============================================================================

class UserProfile(BaseModel):
    """Public profile of the signed-in user."""
    id: UUID = Field(..., description="Unique user identifier")
    type: UserType = Field(..., description="Account type")
    status: UserStatus = Field(..., description="Account status")
    name: str = Field("", description="User display name")
    email: str = Field("", description="User email address")
    job_title: str = Field("", description="User job title")
    idp_username: str = Field(..., description="Provider-qualified username")

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            type=user.type,
            status=user.status,
            name=user.name,
            email=user.email,
            job_title=user.job_title,
            idp_username=user.idp_username,
        )


class SessionPayload(BaseModel):
    id: UUID = Field(..., description="Session identifier")
    user: UserProfile = Field(..., description="Owner of the session")
    created_at: Optional[datetime] = Field(None, description="Session creation timestamp")


class SessionResponse(BaseModel):
    """Response model for the current-session endpoints."""
    session: Optional[SessionPayload] = Field(None, description="Current session, if signed in")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")


class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
