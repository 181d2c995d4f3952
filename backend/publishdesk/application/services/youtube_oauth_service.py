"""Google/YouTube account binding.

The callback branches on how many channels the Google identity owns: none
binds the bare identity, one binds the channel, several park everything in an
encrypted cookie until the user picks channels on the selection page.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

import httpx
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from publishdesk.application.services.social_account_service import apply_channel_binding, upsert_google_account
from publishdesk.application.services.token_refresh_service import get_valid_access_token
from publishdesk.core.config import settings
from publishdesk.domain.models.publish_task import PublishPlatform
from publishdesk.domain.models.social_account import SocialAccount
from publishdesk.integrations import youtube_client
from publishdesk.integrations.youtube_client import YouTubeApiError

logger = logging.getLogger(__name__)


class OAuthFlowError(RuntimeError):
    error_code: str = "internal_error"

    def __init__(self, error_code: str, message: str | None = None) -> None:
        super().__init__(message or error_code)
        self.error_code = error_code


@dataclass
class CallbackOutcome:
    kind: str
    account: SocialAccount | None = None
    pending: dict | None = None


@dataclass
class ChannelRefreshOutcome:
    kind: str
    account: SocialAccount | None = None
    pending: dict | None = None
    channel_count: int = 0


def _call(step_error_code: str, func, *args, **kwargs):
    try:
        return func(*args, **kwargs)
    except YouTubeApiError as exc:
        raise OAuthFlowError(exc.error_code or step_error_code, str(exc)) from exc
    except httpx.HTTPError as exc:
        raise OAuthFlowError(step_error_code, str(exc)) from exc


def _compact_userinfo(userinfo: dict) -> dict:
    return {key: userinfo.get(key) for key in ("sub", "email", "name", "picture")}


def complete_authorization(db: Session, *, user_id: UUID, code: str) -> CallbackOutcome:
    if not settings.google_oauth_configured:
        raise OAuthFlowError("config_error")

    tokens = _call("token_exchange_failed", youtube_client.exchange_code, code)
    access_token = tokens["access_token"]
    userinfo = _call("userinfo_fetch_failed", youtube_client.fetch_userinfo, access_token)
    channels = _call("channel_fetch_failed", youtube_client.list_channels, access_token)

    token_bundle = {
        "access_token": access_token,
        "refresh_token": tokens.get("refresh_token"),
        "expires_in": int(tokens.get("expires_in") or 3600),
    }

    if len(channels) > 1:
        logger.info("youtube_oauth_multi_channel user_id=%s channel_count=%s", user_id, len(channels))
        return CallbackOutcome(
            kind="multi_channel",
            pending={
                "tokens": token_bundle,
                "userinfo": _compact_userinfo(userinfo),
                "channels": [youtube_client.compact_channel(channel) for channel in channels],
            },
        )

    channel = channels[0] if channels else None
    account = upsert_google_account(db, user_id=user_id, tokens=token_bundle, userinfo=userinfo, channel=channel)
    db.commit()
    db.refresh(account)
    return CallbackOutcome(kind="single_channel" if channel else "no_channel", account=account)


def pending_channel_summaries(pending: dict) -> list[dict]:
    summaries = []
    for channel in pending.get("channels") or []:
        fields = youtube_client.channel_account_fields(channel)
        summaries.append(
            {
                "id": fields["account_id"],
                "title": fields["account_name"],
                "url": fields["account_url"],
                "avatarUrl": fields["avatar_url"],
                "stats": fields["channel_stats"],
            }
        )
    return summaries


def confirm_channels(
    db: Session,
    *,
    user_id: UUID,
    pending: dict | None,
    channel_ids: list[str],
    updating_account_id: UUID | None = None,
) -> dict:
    if pending is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Channel selection expired, authorize again",
        )
    if not channel_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Select at least one channel")
    if updating_account_id is not None and len(channel_ids) > 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only one channel can be selected when refreshing an account",
        )

    target = None
    if updating_account_id is not None:
        target = db.get(SocialAccount, updating_account_id)
        if target is None or target.user_id != user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot update this account")

    wanted = set(channel_ids)
    selected = [channel for channel in pending.get("channels") or [] if channel.get("id") in wanted]
    if not selected:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Selected channels are not available")

    if target is not None:
        apply_channel_binding(target, selected[0])
        db.add(target)
        db.commit()
        logger.info("youtube_channel_rebound account_id=%s channel_id=%s", target.id, target.account_id)
        return {"updated": 1, "accountIds": [str(target.id)]}

    account_ids = []
    for channel in selected:
        account = upsert_google_account(
            db,
            user_id=user_id,
            tokens=pending["tokens"],
            userinfo=pending.get("userinfo") or {},
            channel=channel,
        )
        account_ids.append(str(account.id))
    db.commit()
    return {"created": len(account_ids), "accountIds": account_ids}


def _require_youtube(account: SocialAccount, action: str) -> None:
    if account.platform != PublishPlatform.YOUTUBE.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{action} is only supported for YouTube accounts",
        )


def refresh_channel(db: Session, *, account: SocialAccount) -> ChannelRefreshOutcome:
    _require_youtube(account, "Channel refresh")
    access_token = get_valid_access_token(db, account.id)
    if access_token is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token expired, authorize again")

    try:
        channels = youtube_client.list_channels(access_token)
    except (YouTubeApiError, httpx.HTTPError) as exc:
        logger.warning("channel_refresh_failed account_id=%s error=%s", account.id, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    if not channels:
        return ChannelRefreshOutcome(kind="no_channel")

    chosen = next((channel for channel in channels if account.account_id and channel.get("id") == account.account_id), None)
    if chosen is None and len(channels) == 1:
        chosen = channels[0]
    if chosen is not None:
        apply_channel_binding(account, chosen)
        db.add(account)
        db.commit()
        db.refresh(account)
        return ChannelRefreshOutcome(kind="updated", account=account, channel_count=len(channels))

    try:
        userinfo = youtube_client.fetch_userinfo(access_token)
    except (YouTubeApiError, httpx.HTTPError) as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    expires_in = 3600
    if account.token_expiry is not None:
        expiry = account.token_expiry if account.token_expiry.tzinfo else account.token_expiry.replace(tzinfo=UTC)
        expires_in = max(0, int((expiry - datetime.now(UTC)).total_seconds()))
    pending = {
        "tokens": {"access_token": access_token, "expires_in": expires_in},
        "userinfo": _compact_userinfo(userinfo),
        "channels": [youtube_client.compact_channel(channel) for channel in channels],
    }
    return ChannelRefreshOutcome(kind="multi_channel", account=account, pending=pending, channel_count=len(channels))
