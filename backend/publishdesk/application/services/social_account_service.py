import logging
from datetime import UTC, datetime, timedelta
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from publishdesk.core.security import encrypt_token
from publishdesk.domain.models.publish_task import PublishPlatform
from publishdesk.domain.models.social_account import SocialAccount, SocialAccountStatus
from publishdesk.domain.models.user import User
from publishdesk.integrations.youtube_client import channel_account_fields

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("account_name", "account_url", "avatar_url")
CLEARABLE_FIELDS = ("account_url", "avatar_url")
CHANNEL_FIELDS = ("account_id", "account_name", "account_url", "avatar_url", "channel_stats")


def create_account(
    db: Session,
    *,
    user: User,
    platform: str,
    account_name: str,
    account_url: str | None = None,
    avatar_url: str | None = None,
) -> SocialAccount:
    name = account_name.strip()
    existing = db.execute(
        select(SocialAccount).where(
            SocialAccount.user_id == user.id,
            SocialAccount.platform == platform,
            SocialAccount.account_name == name,
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Account already exists for this platform")

    account = SocialAccount(
        user_id=user.id,
        platform=platform,
        account_name=name,
        account_url=account_url,
        avatar_url=avatar_url,
        status=SocialAccountStatus.ACTIVE.value,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    logger.info("social_account_created account_id=%s platform=%s user_id=%s", account.id, platform, user.id)
    return account


def get_account_for_user(db: Session, *, account_id: UUID, user: User) -> SocialAccount:
    account = db.get(SocialAccount, account_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    if account.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account belongs to another user")
    return account


def list_accounts(
    db: Session,
    *,
    user: User,
    platform: str | None = None,
    status_filter: str | None = None,
    search: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[SocialAccount], int]:
    query = select(SocialAccount).where(SocialAccount.user_id == user.id)
    if platform:
        query = query.where(SocialAccount.platform == platform)
    if status_filter:
        query = query.where(SocialAccount.status == status_filter)
    if search:
        query = query.where(func.lower(SocialAccount.account_name).contains(search.strip().lower()))

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
    rows = db.execute(
        query.order_by(SocialAccount.created_at.desc()).offset((page - 1) * page_size).limit(page_size)
    ).scalars().all()
    return list(rows), total


def list_accounts_by_platform(
    db: Session, *, user: User, platform: str, active_only: bool = True
) -> list[SocialAccount]:
    query = select(SocialAccount).where(SocialAccount.user_id == user.id, SocialAccount.platform == platform)
    if active_only:
        query = query.where(SocialAccount.status == SocialAccountStatus.ACTIVE.value)
    return list(db.execute(query.order_by(SocialAccount.account_name.asc())).scalars().all())


def update_account(db: Session, *, account: SocialAccount, **fields) -> SocialAccount:
    for field in UPDATABLE_FIELDS:
        if field not in fields:
            continue
        if fields[field] is None and field not in CLEARABLE_FIELDS:
            continue
        setattr(account, field, fields[field])
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def delete_account(db: Session, *, account: SocialAccount) -> None:
    account_id = account.id
    db.delete(account)
    db.commit()
    logger.info("social_account_deleted account_id=%s", account_id)


def toggle_account_status(db: Session, *, account: SocialAccount) -> SocialAccount:
    if account.status == SocialAccountStatus.ACTIVE.value:
        account.status = SocialAccountStatus.DISABLED.value
    elif account.status == SocialAccountStatus.DISABLED.value:
        account.status = SocialAccountStatus.ACTIVE.value
    else:
        return account
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def _token_expiry(expires_in) -> datetime:
    return datetime.now(UTC) + timedelta(seconds=max(0, int(expires_in or 0)))


def upsert_google_account(
    db: Session,
    *,
    user_id: UUID,
    tokens: dict,
    userinfo: dict,
    channel: dict | None = None,
) -> SocialAccount:
    """Persist a Google identity, keyed by channel id or, without a channel, by Google account id."""
    google_account_id = str(userinfo.get("sub") or "")
    query = select(SocialAccount).where(
        SocialAccount.user_id == user_id,
        SocialAccount.platform == PublishPlatform.YOUTUBE.value,
    )
    if channel is not None:
        fields = channel_account_fields(channel)
        query = query.where(SocialAccount.account_id == fields["account_id"])
    else:
        fields = {
            "account_id": None,
            "account_name": userinfo.get("name") or userinfo.get("email") or "Google account",
            "account_url": None,
            "avatar_url": userinfo.get("picture"),
            "channel_stats": None,
        }
        query = query.where(
            SocialAccount.google_account_id == google_account_id,
            SocialAccount.account_id.is_(None),
        )

    account = db.execute(query).scalars().first()
    if account is None:
        account = SocialAccount(user_id=user_id, platform=PublishPlatform.YOUTUBE.value)

    for field, value in fields.items():
        setattr(account, field, value)
    account.access_token = encrypt_token(tokens["access_token"])
    if tokens.get("refresh_token"):
        account.refresh_token = encrypt_token(tokens["refresh_token"])
    account.token_expiry = _token_expiry(tokens.get("expires_in"))
    account.status = SocialAccountStatus.ACTIVE.value
    account.google_account_id = google_account_id or None
    account.google_email = userinfo.get("email")
    account.google_name = userinfo.get("name")
    db.add(account)
    db.flush()
    logger.info(
        "google_account_upserted account_id=%s channel_id=%s user_id=%s",
        account.id,
        fields["account_id"],
        user_id,
    )
    return account


def apply_channel_binding(account: SocialAccount, channel: dict) -> SocialAccount:
    """Rebind an existing account to a channel without touching its tokens."""
    for field, value in channel_account_fields(channel).items():
        setattr(account, field, value)
    account.status = SocialAccountStatus.ACTIVE.value
    return account


def account_stats(db: Session, *, user: User) -> dict:
    rows = db.execute(
        select(SocialAccount.platform, SocialAccount.status, func.count())
        .where(SocialAccount.user_id == user.id)
        .group_by(SocialAccount.platform, SocialAccount.status)
    ).all()

    by_platform = {platform.value: 0 for platform in PublishPlatform}
    by_status = {item.value: 0 for item in SocialAccountStatus}
    for platform, account_status, count in rows:
        by_platform[platform] = by_platform.get(platform, 0) + count
        by_status[account_status] = by_status.get(account_status, 0) + count

    return {
        "total": sum(by_platform.values()),
        "active": by_status[SocialAccountStatus.ACTIVE.value],
        "expired": by_status[SocialAccountStatus.EXPIRED.value],
        "disabled": by_status[SocialAccountStatus.DISABLED.value],
        "byPlatform": by_platform,
    }
