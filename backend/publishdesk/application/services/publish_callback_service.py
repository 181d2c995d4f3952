import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from publishdesk.application.services.publish_task_service import lock_task
from publishdesk.domain.models.publish_task import (
    PublishMode,
    PublishPlatform,
    PublishRecord,
    PublishRecordStatus,
    PublishStatus,
)
from publishdesk.infrastructure.observability.metrics import record_publish_callback

logger = logging.getLogger(__name__)


def fold_task_status(
    platforms: Iterable[str],
    latest_by_platform: Mapping[str, str],
    *,
    mode: str | None = None,
    scheduled_at: datetime | None = None,
    now: datetime | None = None,
) -> str:
    """Derive the aggregate task status from the latest record per platform.

    Platforms without a record count as still publishing.
    """
    states = [latest_by_platform.get(platform, PublishStatus.PUBLISHING.value) for platform in platforms]
    if not states:
        return PublishStatus.PUBLISHING.value

    if all(state == PublishRecordStatus.PUBLISHED.value for state in states):
        if mode == PublishMode.SCHEDULED.value and scheduled_at is not None:
            if scheduled_at.tzinfo is None:
                scheduled_at = scheduled_at.replace(tzinfo=UTC)
            if scheduled_at > (now or datetime.now(UTC)):
                # uploaded ahead of a timed release
                return PublishStatus.SCHEDULED.value
        return PublishStatus.PUBLISHED.value
    if all(state == PublishRecordStatus.FAILED.value for state in states):
        return PublishStatus.FAILED.value
    if any(state == PublishStatus.PUBLISHING.value for state in states):
        return PublishStatus.PUBLISHING.value
    return PublishStatus.PARTIAL_FAILED.value


def latest_record_statuses(db: Session, task_id: UUID) -> dict[str, str]:
    rows = db.execute(
        select(PublishRecord.platform, PublishRecord.status)
        .where(PublishRecord.task_id == task_id)
        .order_by(PublishRecord.created_at.desc())
    ).all()
    latest: dict[str, str] = {}
    for platform, record_status in rows:
        latest.setdefault(platform, record_status)
    return latest


def apply_publish_callback(
    db: Session,
    *,
    task_id: UUID,
    platform: str,
    success: bool,
    account_id: str | None = None,
    external_id: str | None = None,
    external_url: str | None = None,
    error_message: str | None = None,
    published_at: datetime | None = None,
) -> dict:
    task = lock_task(db, task_id)
    if task is None:
        record_publish_callback(platform, "unknown_task")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Publish task not found")

    platform_value = PublishPlatform(platform).value
    record_status = PublishRecordStatus.PUBLISHED.value if success else PublishRecordStatus.FAILED.value
    if published_at is not None and published_at.tzinfo is None:
        published_at = published_at.replace(tzinfo=UTC)

    record = PublishRecord(
        task_id=task.id,
        platform=platform_value,
        account_id=account_id,
        status=record_status,
        external_id=external_id,
        external_url=external_url,
        error_message=error_message,
        published_at=(published_at or datetime.now(UTC)) if success else None,
    )
    db.add(record)

    if success and external_id and platform_value == PublishPlatform.YOUTUBE.value:
        content = task.content_for(platform_value)
        if content is not None:
            content.youtube_video_id = external_id

    db.flush()
    final_status = fold_task_status(
        task.platforms,
        latest_record_statuses(db, task.id),
        mode=task.mode,
        scheduled_at=task.scheduled_at,
    )
    task.status = final_status
    db.add(task)
    db.commit()

    record_publish_callback(platform_value, record_status.lower())
    logger.info(
        "publish_callback_applied task_id=%s platform=%s record_status=%s final_status=%s",
        task.id,
        platform_value,
        record_status,
        final_status,
    )
    return {
        "success": True,
        "taskId": str(task.id),
        "platform": platform_value,
        "recordStatus": record_status,
        "finalStatus": final_status,
    }
