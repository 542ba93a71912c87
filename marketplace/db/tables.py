import uuid
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import ForeignKey
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class IdTimestampMixin:
    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class Users(IdTimestampMixin, Base):
    __tablename__ = "users"

    type: Mapped[str] = mapped_column(sa.String(16))
    status: Mapped[str] = mapped_column(sa.String(16))
    name: Mapped[str] = mapped_column(sa.String, default="")
    email: Mapped[str] = mapped_column(sa.String, default="")
    job_title: Mapped[str] = mapped_column(sa.String, default="")
    idp_username: Mapped[str] = mapped_column(sa.String)
    accepted_terms_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    # Two concurrent first-time callbacks for the same identity must not
    # both succeed.
    __table_args__ = (
        sa.UniqueConstraint(
            "type",
            "idp_username",
            name="uq_users_type_idp_username",
        ),
    )


class Sessions(IdTimestampMixin, Base):
    __tablename__ = "sessions"

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey(Users.id, ondelete="CASCADE"), index=True)
    # Provider refresh token, opaque to this service.
    access_token: Mapped[str] = mapped_column(sa.Text)
