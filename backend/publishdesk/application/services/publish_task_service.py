import logging
from datetime import UTC, datetime, time
from uuid import UUID

import httpx
from fastapi import HTTPException, status
from sqlalchemy import exists, func, select
from sqlalchemy.orm import Session

from publishdesk.application.services.token_refresh_service import get_valid_access_token
from publishdesk.core.registry import Registry
from publishdesk.core.security import decrypt_token
from publishdesk.domain.models.publish_task import (
    DELETABLE_STATUSES,
    EDITABLE_STATUSES,
    TRIGGERABLE_STATUSES,
    PlatformContent,
    PublishMode,
    PublishPlatform,
    PublishStatus,
    PublishTask,
    TaskAccount,
    YouTubePrivacyStatus,
)
from publishdesk.domain.models.social_account import SocialAccount, SocialAccountStatus
from publishdesk.domain.models.user import User
from publishdesk.infrastructure.observability.metrics import record_publish_dispatch
from publishdesk.integrations import n8n_client, youtube_client
from publishdesk.integrations.n8n_client import WorkflowDispatchError
from publishdesk.integrations.youtube_client import YouTubeApiError

logger = logging.getLogger(__name__)

CONTENT_FIELDS = (
    "title",
    "description",
    "hashtags",
    "youtube_privacy_status",
    "youtube_category_id",
    "youtube_playlist_ids",
    "youtube_thumbnail_url",
)
LIST_CONTENT_FIELDS = ("hashtags", "youtube_playlist_ids")


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _dedupe_platforms(platforms: list[str]) -> list[str]:
    ordered: list[str] = []
    for platform in platforms:
        value = PublishPlatform(platform).value
        if value not in ordered:
            ordered.append(value)
    return ordered


def get_task(db: Session, task_id: UUID) -> PublishTask:
    task = db.get(PublishTask, task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Publish task not found")
    return task


def lock_task(db: Session, task_id: UUID) -> PublishTask | None:
    """Load a task with a row lock so status writes on the same task serialize."""
    return db.execute(
        select(PublishTask)
        .where(PublishTask.id == task_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _get_locked_task(db: Session, task_id: UUID) -> PublishTask:
    task = lock_task(db, task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Publish task not found")
    return task


def _validate_task_accounts(
    db: Session, *, user: User, platforms: list[str], platform_accounts: dict[str, list[UUID]]
) -> list[SocialAccount]:
    accounts: list[SocialAccount] = []
    for platform, account_ids in platform_accounts.items():
        platform_value = PublishPlatform(platform).value
        if platform_value not in platforms:
            raise _bad_request(f"Platform {platform_value} is not part of this task")
        for account_id in account_ids:
            account = db.get(SocialAccount, account_id)
            if account is None or account.user_id != user.id:
                raise _bad_request(f"Account {account_id} not found")
            if account.platform != platform_value:
                raise _bad_request(f"Account {account_id} is not a {platform_value} account")
            if not account.is_selectable:
                raise _bad_request(f"Account {account.account_name} is {account.status.lower()}")
            accounts.append(account)
    return accounts


def _replace_task_accounts(task: PublishTask, platforms: list[str], accounts: list[SocialAccount]) -> None:
    wanted = {account.id: account for account in accounts}
    kept = [
        link
        for link in task.task_accounts
        if link.account.platform not in platforms or link.account_id in wanted
    ]
    linked_ids = {link.account_id for link in kept}
    for account_id, account in wanted.items():
        if account_id not in linked_ids:
            kept.append(TaskAccount(account=account))
    task.task_accounts = kept


def create_task(
    db: Session,
    *,
    user: User,
    title: str,
    platforms: list[str],
    video_url: str | None = None,
    cover_url: str | None = None,
    series_id: str | None = None,
    platform_accounts: dict[str, list[UUID]] | None = None,
) -> PublishTask:
    platform_values = _dedupe_platforms(platforms)
    if not platform_values:
        raise _bad_request("At least one platform is required")
    accounts = _validate_task_accounts(db, user=user, platforms=platform_values, platform_accounts=platform_accounts or {})

    task = PublishTask(
        title=title.strip(),
        video_url=video_url,
        cover_url=cover_url,
        series_id=series_id,
        platforms=platform_values,
        mode=PublishMode.MANUAL.value,
        status=PublishStatus.DRAFT.value,
        created_by=user.id,
    )
    task.platform_contents = [PlatformContent(platform=platform) for platform in platform_values]
    task.task_accounts = [TaskAccount(account=account) for account in {item.id: item for item in accounts}.values()]
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info("publish_task_created task_id=%s platforms=%s user_id=%s", task.id, ",".join(platform_values), user.id)
    return task


def update_task(db: Session, *, task_id: UUID, user: User, changes: dict) -> PublishTask:
    task = _get_locked_task(db, task_id)
    if task.status not in EDITABLE_STATUSES:
        raise _bad_request(f"Task cannot be edited in status {task.status}")

    if changes.get("title"):
        task.title = changes["title"].strip()
    for field in ("video_url", "cover_url", "series_id"):
        if field in changes:
            setattr(task, field, changes[field])

    if changes.get("platforms") is not None:
        new_platforms = _dedupe_platforms(changes["platforms"])
        if not new_platforms:
            raise _bad_request("At least one platform is required")
        removed = [platform for platform in task.platforms if platform not in new_platforms]
        added = [platform for platform in new_platforms if platform not in task.platforms]
        task.platform_contents = [item for item in task.platform_contents if item.platform not in removed]
        for platform in added:
            task.platform_contents.append(PlatformContent(platform=platform))
        task.task_accounts = [link for link in task.task_accounts if link.account.platform not in removed]
        task.platforms = new_platforms

    if changes.get("platform_accounts") is not None:
        accounts = _validate_task_accounts(
            db, user=user, platforms=task.platforms, platform_accounts=changes["platform_accounts"]
        )
        replaced = [PublishPlatform(platform).value for platform in changes["platform_accounts"]]
        _replace_task_accounts(task, replaced, accounts)

    if "mode" in changes and changes["mode"] is not None:
        task.mode = PublishMode(changes["mode"]).value
    if "scheduled_at" in changes:
        task.scheduled_at = _as_utc(changes["scheduled_at"])

    if task.mode == PublishMode.SCHEDULED.value and task.scheduled_at is not None:
        task.status = PublishStatus.SCHEDULED.value
    else:
        task.status = PublishStatus.DRAFT.value

    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info("publish_task_updated task_id=%s status=%s user_id=%s", task.id, task.status, user.id)
    return task


def upsert_platform_content(db: Session, *, task_id: UUID, platform: str, changes: dict) -> PlatformContent:
    task = _get_locked_task(db, task_id)
    if task.status not in EDITABLE_STATUSES:
        raise _bad_request(f"Task content cannot be edited in status {task.status}")
    platform_value = PublishPlatform(platform).value
    if platform_value not in task.platforms:
        raise _bad_request(f"Platform {platform_value} is not part of this task")

    content = task.content_for(platform_value)
    if content is None:
        content = PlatformContent(platform=platform_value)
        task.platform_contents.append(content)
    for field in CONTENT_FIELDS:
        if field not in changes:
            continue
        value = changes[field]
        if value is None and field in LIST_CONTENT_FIELDS:
            value = []
        setattr(content, field, value)

    db.add(task)
    db.commit()
    db.refresh(content)
    return content


def _resolve_accounts(db: Session, *, task: PublishTask, user: User, platform: str) -> list[SocialAccount]:
    linked = [link.account for link in task.task_accounts if link.account.platform == platform]
    if linked:
        return linked
    active = db.execute(
        select(SocialAccount).where(
            SocialAccount.user_id == user.id,
            SocialAccount.platform == platform,
            SocialAccount.status == SocialAccountStatus.ACTIVE.value,
        )
    ).scalars().all()
    return list(active) if len(active) == 1 else []


def _content_payload(task: PublishTask, content: PlatformContent | None, platform: str) -> dict:
    if content is None:
        return {"platform": platform, "title": task.title, "description": None, "hashtags": []}

    payload = {
        "platform": platform,
        "title": content.title or task.title,
        "description": content.description,
        "hashtags": list(content.hashtags or []),
    }
    if platform == PublishPlatform.YOUTUBE.value:
        publish_at = None
        scheduled_at = _as_utc(task.scheduled_at)
        if task.mode == PublishMode.SCHEDULED.value and scheduled_at is not None:
            publish_at = scheduled_at.isoformat()
        privacy_status = content.youtube_privacy_status or YouTubePrivacyStatus.PUBLIC.value
        if publish_at:
            # YouTube only honours publishAt on private uploads
            privacy_status = YouTubePrivacyStatus.PRIVATE.value
        payload["youtube"] = {
            "privacyStatus": privacy_status,
            "categoryId": content.youtube_category_id,
            "playlistIds": list(content.youtube_playlist_ids or []),
            "thumbnailUrl": content.youtube_thumbnail_url,
            "publishAt": publish_at,
        }
    return payload


def trigger_task(
    db: Session,
    *,
    task_id: UUID,
    user: User,
    registry: Registry,
    platforms: list[str] | None = None,
) -> dict:
    task = _get_locked_task(db, task_id)
    if task.status not in TRIGGERABLE_STATUSES:
        raise _bad_request(f"Task cannot be published in status {task.status}")

    requested = _dedupe_platforms(platforms) if platforms else list(task.platforms)
    if not requested:
        raise _bad_request("At least one platform is required")
    invalid = [platform for platform in requested if platform not in task.platforms]
    if invalid:
        raise _bad_request(f"Invalid platforms: {', '.join(invalid)}")

    credentials: list[dict] = []
    used_accounts: list[SocialAccount] = []
    for platform in requested:
        platform_config = registry.platform(platform)
        accounts = _resolve_accounts(db, task=task, user=user, platform=platform)
        for account in accounts:
            if not account.is_selectable:
                raise _bad_request(f"{platform_config.display_name} account {account.account_name} is {account.status.lower()}")

        if not platform_config.requires_live_token:
            for account in accounts:
                credentials.append(
                    {
                        "platform": platform,
                        "accountId": str(account.id),
                        "externalAccountId": account.account_id,
                        "accessToken": decrypt_token(account.access_token) if account.access_token else None,
                    }
                )
            used_accounts.extend(accounts)
            continue

        if not accounts:
            raise _bad_request(f"No {platform_config.display_name} account bound to this task")
        for account in accounts:
            if not account.account_id:
                raise _bad_request(f"{platform_config.display_name} account {account.account_name} has no channel")
            access_token = get_valid_access_token(db, account.id)
            if access_token is None:
                raise _bad_request(
                    f"{platform_config.display_name} account {account.account_name} needs to be re-authorized"
                )
            credentials.append(
                {
                    "platform": platform,
                    "accountId": str(account.id),
                    "externalAccountId": account.account_id,
                    "accessToken": access_token,
                }
            )
        used_accounts.extend(accounts)

    # the token guard may have committed, which releases the row lock
    task = _get_locked_task(db, task_id)
    if task.status not in TRIGGERABLE_STATUSES:
        raise _bad_request(f"Task cannot be published in status {task.status}")
    previous_status = task.status

    payload = {
        "taskId": str(task.id),
        "title": task.title,
        "videoUrl": task.video_url,
        "coverUrl": task.cover_url,
        "seriesId": task.series_id,
        "seriesTitle": None,
        "platforms": requested,
        "platformContents": [_content_payload(task, task.content_for(platform), platform) for platform in requested],
        "accounts": credentials,
    }

    now = datetime.now(UTC)
    task.status = PublishStatus.PUBLISHING.value
    for account in used_accounts:
        account.last_used_at = now
        db.add(account)
    db.add(task)
    db.commit()

    try:
        n8n_client.trigger_workflow(registry.publish_workflow_name, payload)
    except WorkflowDispatchError as exc:
        task = _get_locked_task(db, task_id)
        task.status = previous_status
        db.add(task)
        db.commit()
        record_publish_dispatch("failed")
        logger.error("publish_dispatch_failed task_id=%s previous_status=%s error=%s", task_id, previous_status, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    record_publish_dispatch("dispatched")
    logger.info(
        "publish_task_triggered task_id=%s platforms=%s user_id=%s", task_id, ",".join(requested), user.id
    )
    return {"success": True, "taskId": str(task_id), "platforms": requested}


def cancel_schedule(db: Session, *, task_id: UUID, user: User) -> PublishTask:
    task = _get_locked_task(db, task_id)
    if task.status != PublishStatus.SCHEDULED.value:
        raise _bad_request("Only scheduled tasks can be cancelled")

    content = task.content_for(PublishPlatform.YOUTUBE.value)
    video_id = content.youtube_video_id if content else None
    if video_id:
        accounts = _resolve_accounts(db, task=task, user=user, platform=PublishPlatform.YOUTUBE.value)
        if not accounts:
            raise _bad_request("No YouTube account bound to this task")
        access_token = get_valid_access_token(db, accounts[0].id)
        if access_token is None:
            raise _bad_request("YouTube account needs to be re-authorized")
        try:
            youtube_client.set_video_private(access_token, video_id)
        except (YouTubeApiError, httpx.HTTPError) as exc:
            logger.error("youtube_cancel_schedule_failed task_id=%s video_id=%s error=%s", task_id, video_id, exc)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
        task = _get_locked_task(db, task_id)

    task.status = PublishStatus.DRAFT.value
    task.mode = PublishMode.MANUAL.value
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info("publish_schedule_cancelled task_id=%s video_id=%s user_id=%s", task_id, video_id, user.id)
    return task


def delete_task(db: Session, *, task_id: UUID) -> None:
    task = _get_locked_task(db, task_id)
    if task.status not in DELETABLE_STATUSES:
        raise _bad_request(f"Task cannot be deleted in status {task.status}")
    db.delete(task)
    db.commit()
    logger.info("publish_task_deleted task_id=%s", task_id)


def list_tasks(
    db: Session,
    *,
    status_filter: str | None = None,
    platform: str | None = None,
    search: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[PublishTask], int]:
    query = select(PublishTask)
    if status_filter:
        query = query.where(PublishTask.status == status_filter)
    if platform:
        query = query.where(
            exists().where(PlatformContent.task_id == PublishTask.id, PlatformContent.platform == platform)
        )
    if search:
        query = query.where(func.lower(PublishTask.title).contains(search.strip().lower()))

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
    rows = db.execute(
        query.order_by(PublishTask.created_at.desc()).offset((page - 1) * page_size).limit(page_size)
    ).scalars().all()
    return list(rows), total


def task_stats(db: Session) -> dict:
    counts = dict(db.execute(select(PublishTask.status, func.count()).group_by(PublishTask.status)).all())
    start_of_day = datetime.combine(datetime.now(UTC).date(), time.min, tzinfo=UTC)
    published_today = db.execute(
        select(func.count())
        .select_from(PublishTask)
        .where(PublishTask.status == PublishStatus.PUBLISHED.value, PublishTask.updated_at >= start_of_day)
    ).scalar_one()
    return {
        "draft": counts.get(PublishStatus.DRAFT.value, 0),
        "scheduled": counts.get(PublishStatus.SCHEDULED.value, 0),
        "publishedToday": published_today,
        "failed": counts.get(PublishStatus.FAILED.value, 0) + counts.get(PublishStatus.PARTIAL_FAILED.value, 0),
    }
