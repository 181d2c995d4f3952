import hmac
import logging
import secrets
import time
from urllib.parse import urlencode

from fastapi import Response
from fastapi.responses import RedirectResponse

from publishdesk.core.config import settings
from publishdesk.core.security import decrypt_temp_data, encrypt_temp_data

logger = logging.getLogger(__name__)

STATE_COOKIE = "youtube_oauth_state"
TEMP_AUTH_COOKIE = "youtube_temp_auth"
UPDATING_ACCOUNT_COOKIE = "updating_account_id"


def generate_state() -> str:
    return secrets.token_urlsafe(32)


def states_match(expected: str | None, received: str | None) -> bool:
    if not expected or not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


def set_cookie(response: Response, name: str, value: str, *, max_age: int) -> None:
    response.set_cookie(
        key=name,
        value=value,
        max_age=max_age,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.use_secure_cookies,
    )


def delete_cookie(response: Response, name: str) -> None:
    response.delete_cookie(
        key=name,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.use_secure_cookies,
    )


def seal_capability(data: dict, *, ttl_seconds: int) -> str:
    """Encrypt ``data`` into a cookie value that stops opening after ``ttl_seconds``."""
    return encrypt_temp_data({**data, "exp": int(time.time()) + ttl_seconds})


def open_capability(value: str | None) -> dict | None:
    if not value:
        return None
    payload = decrypt_temp_data(value)
    if not isinstance(payload, dict):
        return None
    if int(payload.get("exp") or 0) <= int(time.time()):
        logger.info("oauth_capability_expired")
        return None
    return payload


def app_redirect(path: str, **params: str) -> RedirectResponse:
    url = f"{settings.public_app_url.rstrip('/')}{path}"
    if params:
        url = f"{url}?{urlencode(params)}"
    return RedirectResponse(url=url, status_code=302)
