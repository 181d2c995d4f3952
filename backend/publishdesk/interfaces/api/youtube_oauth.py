import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from publishdesk.application.services.youtube_oauth_service import (
    OAuthFlowError,
    complete_authorization,
    confirm_channels,
    pending_channel_summaries,
)
from publishdesk.core.config import settings
from publishdesk.domain.models.user import User
from publishdesk.infrastructure.db.session import get_db
from publishdesk.infrastructure.observability.metrics import record_oauth_callback
from publishdesk.integrations import youtube_client
from publishdesk.integrations.oauth_state import (
    STATE_COOKIE,
    TEMP_AUTH_COOKIE,
    UPDATING_ACCOUNT_COOKIE,
    app_redirect,
    delete_cookie,
    generate_state,
    open_capability,
    seal_capability,
    set_cookie,
    states_match,
)
from publishdesk.interfaces.api.deps import get_current_user, get_optional_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/oauth/youtube", tags=["oauth"])

PROVIDER = "youtube"


class ConfirmChannelsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    channel_ids: list[str] = Field(alias="channelIds", max_length=50)
    updating_account_id: UUID | None = Field(default=None, alias="updatingAccountId")


@router.get("/authorize", status_code=status.HTTP_200_OK)
def youtube_oauth_authorize(response: Response, current_user: User = Depends(get_current_user)) -> dict:
    if not settings.google_client_id or not settings.google_redirect_uri:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Google OAuth is not configured",
        )
    state = generate_state()
    set_cookie(response, STATE_COOKIE, state, max_age=settings.oauth_state_ttl_seconds)
    logger.info("youtube_oauth_started user_id=%s", current_user.id)
    return {"authUrl": youtube_client.build_authorization_url(state)}


def _error_redirect(error_code: str) -> RedirectResponse:
    record_oauth_callback(PROVIDER, error_code)
    return app_redirect(settings.accounts_page_path, error=error_code)


@router.get("/callback")
def youtube_oauth_callback(
    request: Request,
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> RedirectResponse:
    if error:
        logger.info("youtube_oauth_denied error=%s", error)
        return _error_redirect(error[:200])
    if not code or not state:
        return _error_redirect("missing_params")
    if current_user is None:
        return _error_redirect("unauthorized")

    saved_state = request.cookies.get(STATE_COOKIE)
    if not states_match(saved_state, state):
        logger.warning("youtube_oauth_state_mismatch user_id=%s", current_user.id)
        redirect = _error_redirect("invalid_state")
        delete_cookie(redirect, STATE_COOKIE)
        return redirect

    try:
        outcome = complete_authorization(db, user_id=current_user.id, code=code)
    except OAuthFlowError as exc:
        db.rollback()
        logger.warning("youtube_oauth_failed user_id=%s error_code=%s error=%s", current_user.id, exc.error_code, exc)
        redirect = _error_redirect(exc.error_code)
        delete_cookie(redirect, STATE_COOKIE)
        return redirect
    except Exception:
        db.rollback()
        logger.exception("youtube_oauth_callback_error user_id=%s", current_user.id)
        redirect = _error_redirect("internal_error")
        delete_cookie(redirect, STATE_COOKIE)
        return redirect

    record_oauth_callback(PROVIDER, outcome.kind)
    if outcome.kind == "multi_channel":
        ttl_seconds = settings.channel_select_ttl_seconds
        redirect = app_redirect(settings.channel_select_path)
        set_cookie(redirect, TEMP_AUTH_COOKIE, seal_capability(outcome.pending, ttl_seconds=ttl_seconds), max_age=ttl_seconds)
    elif outcome.kind == "no_channel":
        redirect = app_redirect(settings.accounts_page_path, success="google_connected_no_channel")
    else:
        redirect = app_redirect(settings.accounts_page_path, success="youtube_connected")
    delete_cookie(redirect, STATE_COOKIE)
    logger.info("youtube_oauth_completed user_id=%s outcome=%s", current_user.id, outcome.kind)
    return redirect


@router.get("/pending-channels", status_code=status.HTTP_200_OK)
def youtube_pending_channels(request: Request, current_user: User = Depends(get_current_user)) -> dict:
    pending = open_capability(request.cookies.get(TEMP_AUTH_COOKIE))
    if pending is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Channel selection expired, authorize again",
        )
    userinfo = pending.get("userinfo") or {}
    return {
        "channels": pending_channel_summaries(pending),
        "googleEmail": userinfo.get("email"),
        "updatingAccountId": request.cookies.get(UPDATING_ACCOUNT_COOKIE),
    }


@router.post("/confirm-channels", status_code=status.HTTP_200_OK)
def youtube_confirm_channels(
    payload: ConfirmChannelsRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    pending = open_capability(request.cookies.get(TEMP_AUTH_COOKIE))
    result = confirm_channels(
        db,
        user_id=current_user.id,
        pending=pending,
        channel_ids=payload.channel_ids,
        updating_account_id=payload.updating_account_id,
    )
    delete_cookie(response, TEMP_AUTH_COOKIE)
    delete_cookie(response, UPDATING_ACCOUNT_COOKIE)
    logger.info("youtube_channels_confirmed user_id=%s account_ids=%s", current_user.id, ",".join(result["accountIds"]))
    return result
