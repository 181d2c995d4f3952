from datetime import UTC, datetime

import httpx

from publishdesk.core.config import settings

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"

YOUTUBE_OAUTH_SCOPES = (
    "openid",
    "email",
    "profile",
    "https://www.googleapis.com/auth/youtube.readonly",
    "https://www.googleapis.com/auth/youtube.upload",
    # videos.update for cancelling a timed release
    "https://www.googleapis.com/auth/youtube.force-ssl",
)


class YouTubeApiError(RuntimeError):
    error_code: str = "youtube_api_error"

    def __init__(self, message: str, *, error_code: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        if error_code:
            self.error_code = error_code
        self.status_code = status_code


def _bearer(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


def _client() -> httpx.Client:
    return httpx.Client(timeout=settings.google_http_timeout_seconds)


def build_authorization_url(state: str) -> str:
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": " ".join(YOUTUBE_OAUTH_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return str(httpx.URL(GOOGLE_AUTHORIZE_URL, params=params))


def exchange_code(code: str) -> dict:
    data = {
        "code": code,
        "client_id": settings.google_client_id,
        "client_secret": settings.google_client_secret,
        "redirect_uri": settings.google_redirect_uri,
        "grant_type": "authorization_code",
    }
    with _client() as client:
        response = client.post(GOOGLE_TOKEN_URL, data=data)
    if response.status_code >= 400:
        raise YouTubeApiError(
            f"Google token exchange failed: {response.status_code}",
            error_code="token_exchange_failed",
            status_code=response.status_code,
        )
    payload = response.json()
    if not payload.get("access_token"):
        raise YouTubeApiError("Google token exchange missing access token", error_code="token_exchange_failed")
    return payload


def refresh_access_token(refresh_token: str) -> dict:
    if not settings.google_client_id or not settings.google_client_secret:
        raise YouTubeApiError("Google OAuth is not configured", error_code="config_error")
    data = {
        "client_id": settings.google_client_id,
        "client_secret": settings.google_client_secret,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    }
    with _client() as client:
        response = client.post(GOOGLE_TOKEN_URL, data=data)
    if response.status_code >= 400:
        raise YouTubeApiError(
            f"Google token refresh failed: {response.status_code}",
            error_code="token_refresh_failed",
            status_code=response.status_code,
        )
    payload = response.json()
    if not payload.get("access_token"):
        raise YouTubeApiError("Google token refresh missing access token", error_code="token_refresh_failed")
    return payload


def fetch_userinfo(access_token: str) -> dict:
    with _client() as client:
        response = client.get(GOOGLE_USERINFO_URL, headers=_bearer(access_token))
    if response.status_code >= 400:
        raise YouTubeApiError(
            f"Google userinfo fetch failed: {response.status_code}",
            error_code="userinfo_fetch_failed",
            status_code=response.status_code,
        )
    return response.json()


def list_channels(access_token: str, *, channel_id: str | None = None) -> list[dict]:
    params = {"part": "snippet,statistics"}
    if channel_id:
        params["id"] = channel_id
    else:
        params["mine"] = "true"
    with _client() as client:
        response = client.get(f"{YOUTUBE_API_BASE}/channels", params=params, headers=_bearer(access_token))
    if response.status_code >= 400:
        raise YouTubeApiError(
            f"YouTube channel list failed: {response.status_code}",
            error_code="channel_fetch_failed",
            status_code=response.status_code,
        )
    return list(response.json().get("items") or [])


def list_playlists(access_token: str) -> list[dict]:
    params = {"part": "snippet", "mine": "true", "maxResults": 50}
    with _client() as client:
        response = client.get(f"{YOUTUBE_API_BASE}/playlists", params=params, headers=_bearer(access_token))
    if response.status_code >= 400:
        raise YouTubeApiError(
            f"YouTube playlist list failed: {response.status_code}", status_code=response.status_code
        )
    playlists = []
    for item in response.json().get("items") or []:
        snippet = item.get("snippet") or {}
        playlists.append(
            {
                "id": item.get("id"),
                "title": snippet.get("title"),
                "description": snippet.get("description") or "",
                "thumbnailUrl": best_thumbnail(snippet.get("thumbnails")),
            }
        )
    return playlists


def list_categories(access_token: str, *, region_code: str = "US") -> list[dict]:
    params = {"part": "snippet", "regionCode": region_code}
    with _client() as client:
        response = client.get(f"{YOUTUBE_API_BASE}/videoCategories", params=params, headers=_bearer(access_token))
    if response.status_code >= 400:
        raise YouTubeApiError(
            f"YouTube category list failed: {response.status_code}", status_code=response.status_code
        )
    categories = []
    for item in response.json().get("items") or []:
        snippet = item.get("snippet") or {}
        if not snippet.get("assignable", True):
            continue
        categories.append({"id": item.get("id"), "title": snippet.get("title")})
    return categories


def set_video_private(access_token: str, video_id: str) -> None:
    # videos.update replaces the whole status part, so publishAt is cleared
    body = {"id": video_id, "status": {"privacyStatus": "private"}}
    with _client() as client:
        response = client.put(
            f"{YOUTUBE_API_BASE}/videos",
            params={"part": "status"},
            json=body,
            headers=_bearer(access_token),
        )
    if response.status_code >= 400:
        raise YouTubeApiError(
            f"YouTube video update failed: {response.status_code}",
            error_code="video_update_failed",
            status_code=response.status_code,
        )


def best_thumbnail(thumbnails: dict | None) -> str | None:
    thumbnails = thumbnails or {}
    for size in ("high", "medium", "default"):
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return None


def _to_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def channel_stats(channel: dict) -> dict:
    statistics = channel.get("statistics") or {}
    return {
        "subscriberCount": 0 if statistics.get("hiddenSubscriberCount") else _to_int(statistics.get("subscriberCount")),
        "videoCount": _to_int(statistics.get("videoCount")),
        "viewCount": _to_int(statistics.get("viewCount")),
        "fetchedAt": datetime.now(UTC).isoformat(),
    }


def channel_account_fields(channel: dict) -> dict:
    """Map a ``channels.list`` item onto SocialAccount columns."""
    snippet = channel.get("snippet") or {}
    channel_id = channel["id"]
    custom_url = snippet.get("customUrl")
    return {
        "account_id": channel_id,
        "account_name": snippet.get("title") or channel_id,
        "account_url": f"https://youtube.com/{custom_url}" if custom_url else f"https://youtube.com/channel/{channel_id}",
        "avatar_url": best_thumbnail(snippet.get("thumbnails")),
        "channel_stats": channel_stats(channel),
    }


def compact_channel(channel: dict) -> dict:
    """Keep only what ``channel_account_fields`` reads, so several channels fit in one cookie."""
    snippet = channel.get("snippet") or {}
    avatar_url = best_thumbnail(snippet.get("thumbnails"))
    return {
        "id": channel["id"],
        "snippet": {
            "title": snippet.get("title"),
            "customUrl": snippet.get("customUrl"),
            "thumbnails": {"high": {"url": avatar_url}} if avatar_url else {},
        },
        "statistics": channel.get("statistics") or {},
    }
