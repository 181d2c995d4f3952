import logging
from uuid import UUID

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from publishdesk.application.services.social_account_service import get_account_for_user
from publishdesk.application.services.token_refresh_service import get_valid_access_token
from publishdesk.domain.models.publish_task import PublishPlatform
from publishdesk.domain.models.social_account import SocialAccount
from publishdesk.domain.models.user import User
from publishdesk.infrastructure.db.session import get_db
from publishdesk.integrations import youtube_client
from publishdesk.integrations.youtube_client import YouTubeApiError
from publishdesk.interfaces.api.deps import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/youtube", tags=["youtube"])


def _youtube_access_token(db: Session, *, account_id: UUID, user: User) -> tuple[SocialAccount, str]:
    account = get_account_for_user(db, account_id=account_id, user=user)
    if account.platform != PublishPlatform.YOUTUBE.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Not a YouTube account")
    access_token = get_valid_access_token(db, account.id)
    if access_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="YouTube authorization expired, authorize again",
        )
    return account, access_token


@router.get("/playlists", status_code=status.HTTP_200_OK)
def youtube_playlists(
    account_id: UUID = Query(alias="accountId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    account, access_token = _youtube_access_token(db, account_id=account_id, user=current_user)
    try:
        playlists = youtube_client.list_playlists(access_token)
    except (YouTubeApiError, httpx.HTTPError) as exc:
        logger.error("youtube_playlists_failed account_id=%s error=%s", account.id, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to load playlists") from exc
    return {"items": playlists}


@router.get("/categories", status_code=status.HTTP_200_OK)
def youtube_categories(
    account_id: UUID = Query(alias="accountId"),
    region_code: str = Query(default="US", alias="regionCode", min_length=2, max_length=2),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    account, access_token = _youtube_access_token(db, account_id=account_id, user=current_user)
    try:
        categories = youtube_client.list_categories(access_token, region_code=region_code.upper())
    except (YouTubeApiError, httpx.HTTPError) as exc:
        logger.error("youtube_categories_failed account_id=%s error=%s", account.id, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to load categories") from exc
    return {"items": categories}
