import hmac
import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from publishdesk.application.services.publish_callback_service import apply_publish_callback
from publishdesk.application.services.publish_task_service import (
    cancel_schedule,
    create_task,
    delete_task,
    get_task,
    list_tasks,
    task_stats,
    trigger_task,
    update_task,
    upsert_platform_content,
)
from publishdesk.core.config import settings
from publishdesk.core.registry import Registry, get_registry
from publishdesk.domain.models.publish_task import (
    PlatformContent,
    PublishMode,
    PublishPlatform,
    PublishRecord,
    PublishStatus,
    PublishTask,
    YouTubePrivacyStatus,
)
from publishdesk.domain.models.user import User
from publishdesk.infrastructure.db.session import get_db
from publishdesk.interfaces.api.deps import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/publish", tags=["publish"])


class PublishTaskCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1, max_length=255)
    video_url: str | None = Field(default=None, alias="videoUrl", max_length=2048)
    cover_url: str | None = Field(default=None, alias="coverUrl", max_length=2048)
    series_id: str | None = Field(default=None, alias="seriesId", max_length=255)
    platforms: list[PublishPlatform] = Field(min_length=1)
    platform_accounts: dict[PublishPlatform, list[UUID]] | None = Field(default=None, alias="platformAccounts")


class PublishTaskUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(default=None, max_length=255)
    video_url: str | None = Field(default=None, alias="videoUrl", max_length=2048)
    cover_url: str | None = Field(default=None, alias="coverUrl", max_length=2048)
    series_id: str | None = Field(default=None, alias="seriesId", max_length=255)
    platforms: list[PublishPlatform] | None = Field(default=None, min_length=1)
    mode: PublishMode | None = None
    scheduled_at: datetime | None = Field(default=None, alias="scheduledAt")
    platform_accounts: dict[PublishPlatform, list[UUID]] | None = Field(default=None, alias="platformAccounts")


class PlatformContentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    platform: PublishPlatform
    title: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=5000)
    hashtags: list[str] | None = Field(default=None, max_length=30)
    youtube_privacy_status: YouTubePrivacyStatus | None = Field(default=None, alias="youtubePrivacyStatus")
    youtube_category_id: str | None = Field(default=None, alias="youtubeCategoryId", max_length=20)
    youtube_playlist_ids: list[str] | None = Field(default=None, alias="youtubePlaylistIds")
    youtube_thumbnail_url: str | None = Field(default=None, alias="youtubeThumbnailUrl", max_length=2048)


class TriggerRequest(BaseModel):
    platforms: list[PublishPlatform] | None = None


class PublishCallbackRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: UUID = Field(alias="taskId")
    platform: PublishPlatform
    success: bool
    account_id: str | None = Field(default=None, alias="accountId", max_length=64)
    external_id: str | None = Field(default=None, alias="externalId", max_length=255)
    external_url: str | None = Field(default=None, alias="externalUrl", max_length=2048)
    error_message: str | None = Field(default=None, alias="errorMessage")
    published_at: datetime | None = Field(default=None, alias="publishedAt")


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _serialize_content(content: PlatformContent) -> dict:
    return {
        "id": str(content.id),
        "platform": content.platform,
        "title": content.title,
        "description": content.description,
        "hashtags": list(content.hashtags or []),
        "youtubePrivacyStatus": content.youtube_privacy_status,
        "youtubeCategoryId": content.youtube_category_id,
        "youtubePlaylistIds": list(content.youtube_playlist_ids or []),
        "youtubeThumbnailUrl": content.youtube_thumbnail_url,
        "youtubeVideoId": content.youtube_video_id,
    }


def _serialize_record(record: PublishRecord) -> dict:
    return {
        "id": str(record.id),
        "platform": record.platform,
        "accountId": record.account_id,
        "status": record.status,
        "externalId": record.external_id,
        "externalUrl": record.external_url,
        "errorMessage": record.error_message,
        "publishedAt": _isoformat(record.published_at),
        "createdAt": _isoformat(record.created_at),
    }


def _serialize_task(task: PublishTask, *, detail: bool = False) -> dict:
    payload = {
        "id": str(task.id),
        "title": task.title,
        "videoUrl": task.video_url,
        "coverUrl": task.cover_url,
        "seriesId": task.series_id,
        "platforms": list(task.platforms or []),
        "mode": task.mode,
        "scheduledAt": _isoformat(task.scheduled_at),
        "status": task.status,
        "createdBy": str(task.created_by),
        "createdAt": _isoformat(task.created_at),
        "updatedAt": _isoformat(task.updated_at),
    }
    if detail:
        payload["platformContents"] = [_serialize_content(item) for item in task.platform_contents]
        payload["records"] = [_serialize_record(item) for item in task.records]
        payload["accounts"] = [
            {
                "id": str(link.account.id),
                "platform": link.account.platform,
                "accountName": link.account.account_name,
                "avatarUrl": link.account.avatar_url,
                "status": link.account.status,
            }
            for link in task.task_accounts
        ]
    return payload


def _platform_accounts(value: dict[PublishPlatform, list[UUID]] | None) -> dict[str, list[UUID]] | None:
    if value is None:
        return None
    return {platform.value: account_ids for platform, account_ids in value.items()}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_publish_task(
    payload: PublishTaskCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    task = create_task(
        db,
        user=current_user,
        title=payload.title,
        platforms=[platform.value for platform in payload.platforms],
        video_url=payload.video_url,
        cover_url=payload.cover_url,
        series_id=payload.series_id,
        platform_accounts=_platform_accounts(payload.platform_accounts),
    )
    return _serialize_task(task, detail=True)


@router.get("", status_code=status.HTTP_200_OK)
def list_publish_tasks(
    status_filter: PublishStatus | None = Query(default=None, alias="status"),
    platform: PublishPlatform | None = Query(default=None),
    search: str | None = Query(default=None, max_length=255),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100, alias="pageSize"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    rows, total = list_tasks(
        db,
        status_filter=status_filter.value if status_filter else None,
        platform=platform.value if platform else None,
        search=search,
        page=page,
        page_size=page_size,
    )
    return {
        "items": [_serialize_task(row) for row in rows],
        "total": total,
        "page": page,
        "pageSize": page_size,
    }


@router.get("/stats", status_code=status.HTTP_200_OK)
def publish_task_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    return task_stats(db)


@router.post("/callback", status_code=status.HTTP_200_OK)
def publish_callback(
    payload: PublishCallbackRequest,
    callback_secret: str | None = Header(default=None, alias="X-Callback-Secret"),
    db: Session = Depends(get_db),
) -> dict:
    expected_secret = settings.publish_callback_secret
    if expected_secret and not hmac.compare_digest(
        (callback_secret or "").encode("utf-8"), expected_secret.encode("utf-8")
    ):
        logger.warning("publish_callback_rejected task_id=%s platform=%s", payload.task_id, payload.platform.value)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid callback secret")

    return apply_publish_callback(
        db,
        task_id=payload.task_id,
        platform=payload.platform.value,
        success=payload.success,
        account_id=payload.account_id,
        external_id=payload.external_id,
        external_url=payload.external_url,
        error_message=payload.error_message,
        published_at=payload.published_at,
    )


@router.get("/{task_id}", status_code=status.HTTP_200_OK)
def get_publish_task(
    task_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    return _serialize_task(get_task(db, task_id), detail=True)


@router.patch("/{task_id}", status_code=status.HTTP_200_OK)
def update_publish_task(
    task_id: UUID,
    payload: PublishTaskUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    changes = payload.model_dump(exclude_unset=True)
    if payload.platforms is not None:
        changes["platforms"] = [platform.value for platform in payload.platforms]
    if "platform_accounts" in changes:
        changes["platform_accounts"] = _platform_accounts(payload.platform_accounts)
    if payload.mode is not None:
        changes["mode"] = payload.mode.value
    task = update_task(db, task_id=task_id, user=current_user, changes=changes)
    return _serialize_task(task, detail=True)


@router.patch("/{task_id}/platform-content", status_code=status.HTTP_200_OK)
def update_publish_platform_content(
    task_id: UUID,
    payload: PlatformContentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    changes = payload.model_dump(exclude_unset=True, exclude={"platform"})
    if payload.youtube_privacy_status is not None:
        changes["youtube_privacy_status"] = payload.youtube_privacy_status.value
    content = upsert_platform_content(db, task_id=task_id, platform=payload.platform.value, changes=changes)
    return _serialize_content(content)


@router.post("/{task_id}/trigger", status_code=status.HTTP_200_OK)
def trigger_publish_task(
    task_id: UUID,
    payload: TriggerRequest | None = None,
    db: Session = Depends(get_db),
    registry: Registry = Depends(get_registry),
    current_user: User = Depends(get_current_user),
) -> dict:
    platforms = [platform.value for platform in payload.platforms] if payload and payload.platforms else None
    return trigger_task(db, task_id=task_id, user=current_user, registry=registry, platforms=platforms)


@router.post("/{task_id}/cancel-schedule", status_code=status.HTTP_200_OK)
def cancel_publish_schedule(
    task_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    task = cancel_schedule(db, task_id=task_id, user=current_user)
    return _serialize_task(task, detail=True)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_publish_task(
    task_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    delete_task(db, task_id=task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
