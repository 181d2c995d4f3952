import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from publishdesk.application.services.social_account_service import (
    account_stats,
    create_account,
    delete_account,
    get_account_for_user,
    list_accounts,
    list_accounts_by_platform,
    toggle_account_status,
    update_account,
)
from publishdesk.application.services.token_refresh_service import get_valid_access_token, refresh_channel_stats
from publishdesk.application.services.youtube_oauth_service import refresh_channel
from publishdesk.core.config import settings
from publishdesk.domain.models.publish_task import PublishPlatform
from publishdesk.domain.models.social_account import SocialAccount, SocialAccountStatus
from publishdesk.domain.models.user import User
from publishdesk.infrastructure.db.session import get_db
from publishdesk.integrations.oauth_state import TEMP_AUTH_COOKIE, UPDATING_ACCOUNT_COOKIE, seal_capability, set_cookie
from publishdesk.interfaces.api.deps import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounts", tags=["accounts"])


class AccountCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    platform: PublishPlatform
    account_name: str = Field(alias="accountName", min_length=1, max_length=100)
    account_url: str | None = Field(default=None, alias="accountUrl", max_length=1024)
    avatar_url: str | None = Field(default=None, alias="avatarUrl", max_length=1024)


class AccountUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_name: str | None = Field(default=None, alias="accountName", min_length=1, max_length=100)
    account_url: str | None = Field(default=None, alias="accountUrl", max_length=1024)
    avatar_url: str | None = Field(default=None, alias="avatarUrl", max_length=1024)


def _isoformat(value) -> str | None:
    return value.isoformat() if value else None


def serialize_account(account: SocialAccount) -> dict:
    return {
        "id": str(account.id),
        "platform": account.platform,
        "accountName": account.account_name,
        "accountId": account.account_id,
        "accountUrl": account.account_url,
        "avatarUrl": account.avatar_url,
        "status": account.status,
        "hasChannel": bool(account.account_id) if account.platform == PublishPlatform.YOUTUBE.value else True,
        "tokenExpiry": _isoformat(account.token_expiry),
        "lastUsedAt": _isoformat(account.last_used_at),
        "channelStats": account.channel_stats,
        "googleEmail": account.google_email,
        "googleName": account.google_name,
        "createdAt": _isoformat(account.created_at),
        "updatedAt": _isoformat(account.updated_at),
    }


@router.get("", status_code=status.HTTP_200_OK)
def list_social_accounts(
    platform: PublishPlatform | None = Query(default=None),
    status_filter: SocialAccountStatus | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=50, alias="pageSize"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    rows, total = list_accounts(
        db,
        user=current_user,
        platform=platform.value if platform else None,
        status_filter=status_filter.value if status_filter else None,
        search=search,
        page=page,
        page_size=page_size,
    )
    return {
        "items": [serialize_account(row) for row in rows],
        "total": total,
        "page": page,
        "pageSize": page_size,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_social_account(
    payload: AccountCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    account = create_account(
        db,
        user=current_user,
        platform=payload.platform.value,
        account_name=payload.account_name,
        account_url=payload.account_url,
        avatar_url=payload.avatar_url,
    )
    return serialize_account(account)


@router.get("/stats", status_code=status.HTTP_200_OK)
def social_account_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    return account_stats(db, user=current_user)


@router.get("/by-platform/{platform}", status_code=status.HTTP_200_OK)
def social_accounts_by_platform(
    platform: PublishPlatform,
    active_only: bool = Query(default=True, alias="activeOnly"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    rows = list_accounts_by_platform(db, user=current_user, platform=platform.value, active_only=active_only)
    return {
        "items": [
            {
                "id": str(row.id),
                "platform": row.platform,
                "accountName": row.account_name,
                "avatarUrl": row.avatar_url,
                "status": row.status,
                "hasChannel": bool(row.account_id) if row.platform == PublishPlatform.YOUTUBE.value else True,
            }
            for row in rows
        ]
    }


@router.get("/{account_id}", status_code=status.HTTP_200_OK)
def get_social_account(
    account_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    return serialize_account(get_account_for_user(db, account_id=account_id, user=current_user))


@router.patch("/{account_id}", status_code=status.HTTP_200_OK)
def update_social_account(
    account_id: UUID,
    payload: AccountUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    account = get_account_for_user(db, account_id=account_id, user=current_user)
    return serialize_account(update_account(db, account=account, **payload.model_dump(exclude_unset=True)))


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_social_account(
    account_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    account = get_account_for_user(db, account_id=account_id, user=current_user)
    delete_account(db, account=account)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{account_id}/toggle-status", status_code=status.HTTP_200_OK)
def toggle_social_account_status(
    account_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    account = get_account_for_user(db, account_id=account_id, user=current_user)
    return serialize_account(toggle_account_status(db, account=account))


@router.post("/{account_id}/refresh-token", status_code=status.HTTP_200_OK)
def refresh_social_account_token(
    account_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    account = get_account_for_user(db, account_id=account_id, user=current_user)
    if account.platform != PublishPlatform.YOUTUBE.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Token refresh is only supported for YouTube accounts",
        )
    if not account.refresh_token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No refresh token, authorize again")

    access_token = get_valid_access_token(db, account.id)
    if access_token is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token refresh failed, authorize again")

    refresh_channel_stats(db, account=account, access_token=access_token)
    db.refresh(account)
    return {
        "status": account.status,
        "tokenExpiry": _isoformat(account.token_expiry),
        "channelStats": account.channel_stats,
    }


@router.post("/{account_id}/refresh-channel", status_code=status.HTTP_200_OK)
def refresh_social_account_channel(
    account_id: UUID,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    account = get_account_for_user(db, account_id=account_id, user=current_user)
    outcome = refresh_channel(db, account=account)

    if outcome.kind == "no_channel":
        return {"status": "no_channel", "message": "This Google account has no YouTube channel"}
    if outcome.kind == "updated":
        return {"status": "updated", "data": serialize_account(outcome.account)}

    ttl_seconds = settings.channel_refresh_ttl_seconds
    set_cookie(response, TEMP_AUTH_COOKIE, seal_capability(outcome.pending, ttl_seconds=ttl_seconds), max_age=ttl_seconds)
    set_cookie(response, UPDATING_ACCOUNT_COOKIE, str(account.id), max_age=ttl_seconds)
    logger.info("youtube_channel_refresh_multi account_id=%s channel_count=%s", account.id, outcome.channel_count)
    return {
        "status": "multi_channel",
        "redirectUrl": settings.channel_select_path,
        "channelCount": outcome.channel_count,
    }
