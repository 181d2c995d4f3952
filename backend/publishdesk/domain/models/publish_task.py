import uuid
from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from publishdesk.infrastructure.db.base import Base


class PublishPlatform(StrEnum):
    INSTAGRAM = "INSTAGRAM"
    THREADS = "THREADS"
    YOUTUBE = "YOUTUBE"


class PublishStatus(StrEnum):
    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    PUBLISHING = "PUBLISHING"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"
    PARTIAL_FAILED = "PARTIAL_FAILED"


class PublishMode(StrEnum):
    IMMEDIATE = "IMMEDIATE"
    SCHEDULED = "SCHEDULED"
    MANUAL = "MANUAL"


class YouTubePrivacyStatus(StrEnum):
    PUBLIC = "public"
    UNLISTED = "unlisted"
    PRIVATE = "private"


class PublishRecordStatus(StrEnum):
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"


EDITABLE_STATUSES = frozenset({PublishStatus.DRAFT.value, PublishStatus.SCHEDULED.value})
TRIGGERABLE_STATUSES = frozenset(
    {PublishStatus.DRAFT.value, PublishStatus.SCHEDULED.value, PublishStatus.PARTIAL_FAILED.value}
)
DELETABLE_STATUSES = frozenset(
    {
        PublishStatus.DRAFT.value,
        PublishStatus.SCHEDULED.value,
        PublishStatus.FAILED.value,
        PublishStatus.PARTIAL_FAILED.value,
    }
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PublishTask(Base):
    __tablename__ = "publish_tasks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    video_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    cover_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    series_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    platforms: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    mode: Mapped[str] = mapped_column(String(20), nullable=False, default=PublishMode.MANUAL.value)
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=PublishStatus.DRAFT.value, index=True)
    created_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    platform_contents = relationship(
        "PlatformContent", back_populates="task", cascade="all, delete-orphan", order_by="PlatformContent.platform"
    )
    records = relationship(
        "PublishRecord",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="PublishRecord.created_at.desc()",
    )
    task_accounts = relationship("TaskAccount", back_populates="task", cascade="all, delete-orphan")

    def content_for(self, platform: str) -> "PlatformContent | None":
        return next((item for item in self.platform_contents if item.platform == platform), None)


class PlatformContent(Base):
    __tablename__ = "publish_platform_contents"
    __table_args__ = (UniqueConstraint("task_id", "platform", name="uq_publish_platform_contents_task_platform"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("publish_tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    hashtags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    youtube_privacy_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    youtube_category_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    youtube_playlist_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    youtube_thumbnail_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    youtube_video_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    task = relationship("PublishTask", back_populates="platform_contents")


class PublishRecord(Base):
    __tablename__ = "publish_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("publish_tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # microsecond precision; the latest row per platform drives the task status
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    task = relationship("PublishTask", back_populates="records")


class TaskAccount(Base):
    __tablename__ = "publish_task_accounts"
    __table_args__ = (UniqueConstraint("task_id", "account_id", name="uq_publish_task_accounts_task_account"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("publish_tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("social_accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    task = relationship("PublishTask", back_populates="task_accounts")
    account = relationship("SocialAccount", back_populates="task_links")
