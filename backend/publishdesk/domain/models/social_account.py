import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import JSON, DateTime, ForeignKey, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from publishdesk.infrastructure.db.base import Base


class SocialAccountStatus(StrEnum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    DISABLED = "DISABLED"


UNSELECTABLE_ACCOUNT_STATUSES = frozenset({SocialAccountStatus.EXPIRED.value, SocialAccountStatus.DISABLED.value})


class SocialAccount(Base):
    __tablename__ = "social_accounts"
    __table_args__ = (
        UniqueConstraint("user_id", "platform", "account_id", name="uq_social_accounts_user_platform_account"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # null for a Google identity that has no YouTube channel yet
    account_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    account_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    access_token: Mapped[str | None] = mapped_column(String(4096), nullable=True)
    refresh_token: Mapped[str | None] = mapped_column(String(4096), nullable=True)
    token_expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SocialAccountStatus.PENDING.value)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    channel_stats: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    google_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    google_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    google_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    task_links = relationship("TaskAccount", back_populates="account", cascade="all, delete-orphan")

    @property
    def is_selectable(self) -> bool:
        return self.status not in UNSELECTABLE_ACCOUNT_STATUSES
