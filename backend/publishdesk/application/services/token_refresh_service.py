"""Lazy OAuth token refresh.

There is no background refresher: every caller that needs to talk to the
platform goes through ``get_valid_access_token`` first. A ``None`` result means
the account must be re-authorized and has been marked EXPIRED.
"""

import logging
from datetime import UTC, datetime, timedelta
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from publishdesk.core.security import decrypt_token, encrypt_token, is_token_expired
from publishdesk.domain.models.social_account import SocialAccount, SocialAccountStatus
from publishdesk.infrastructure.observability.metrics import record_token_refresh
from publishdesk.integrations import youtube_client
from publishdesk.integrations.youtube_client import YouTubeApiError

logger = logging.getLogger(__name__)


def _mark_expired(db: Session, account: SocialAccount) -> None:
    account.status = SocialAccountStatus.EXPIRED.value
    db.add(account)
    db.commit()


def get_valid_access_token(db: Session, account_id: UUID) -> str | None:
    account = db.get(SocialAccount, account_id)
    if account is None or not account.access_token:
        return None

    if not is_token_expired(account.token_expiry):
        return decrypt_token(account.access_token)

    if not account.refresh_token:
        logger.warning("token_refresh_skipped account_id=%s reason=no_refresh_token", account.id)
        record_token_refresh("no_refresh_token")
        _mark_expired(db, account)
        return None

    try:
        payload = youtube_client.refresh_access_token(decrypt_token(account.refresh_token))
    except (YouTubeApiError, httpx.HTTPError) as exc:
        logger.warning("token_refresh_failed account_id=%s error=%s", account.id, exc)
        record_token_refresh("failed")
        _mark_expired(db, account)
        return None

    access_token = payload["access_token"]
    account.access_token = encrypt_token(access_token)
    account.token_expiry = datetime.now(UTC) + timedelta(seconds=int(payload.get("expires_in") or 3600))
    if payload.get("refresh_token"):
        account.refresh_token = encrypt_token(payload["refresh_token"])
    account.status = SocialAccountStatus.ACTIVE.value
    db.add(account)
    db.commit()
    record_token_refresh("refreshed")
    logger.info("token_refreshed account_id=%s", account.id)
    return access_token


def refresh_channel_stats(db: Session, *, account: SocialAccount, access_token: str) -> bool:
    if not account.account_id:
        return False
    try:
        channels = youtube_client.list_channels(access_token, channel_id=account.account_id)
    except (YouTubeApiError, httpx.HTTPError) as exc:
        logger.warning("channel_stats_refresh_failed account_id=%s error=%s", account.id, exc)
        return False
    if not channels:
        return False

    account.channel_stats = youtube_client.channel_stats(channels[0])
    db.add(account)
    db.commit()
    return True
