from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy import select

from publishdesk.core.config import settings
from publishdesk.core.security import decrypt_token
from publishdesk.domain.models.social_account import SocialAccount
from publishdesk.integrations import youtube_client
from publishdesk.integrations.oauth_state import STATE_COOKIE, TEMP_AUTH_COOKIE

USERINFO = {"sub": "google-123", "email": "studio@gmail.test", "name": "Studio", "picture": "https://img.test/me.png"}


def _channel(channel_id: str, title: str) -> dict:
    return {
        "id": channel_id,
        "snippet": {
            "title": title,
            "customUrl": f"@{title.lower().replace(' ', '')}",
            "description": "A long channel description that is not needed after binding",
            "thumbnails": {"default": {"url": f"https://img.test/{channel_id}.jpg"}},
        },
        "statistics": {"subscriberCount": "1200", "videoCount": "34", "viewCount": "56000"},
    }


@pytest.fixture
def google(monkeypatch):
    monkeypatch.setattr(settings, "google_client_id", "client-id.apps.googleusercontent.com")
    monkeypatch.setattr(settings, "google_client_secret", "client-secret")
    monkeypatch.setattr(settings, "google_redirect_uri", "http://testserver/oauth/youtube/callback")

    state = {"channels": [], "codes": []}

    def fake_exchange(code):
        state["codes"].append(code)
        return {"access_token": "ya29.fresh", "refresh_token": "1//refresh", "expires_in": 3599}

    monkeypatch.setattr(youtube_client, "exchange_code", fake_exchange)
    monkeypatch.setattr(youtube_client, "fetch_userinfo", lambda access_token: dict(USERINFO))
    monkeypatch.setattr(youtube_client, "list_channels", lambda access_token, channel_id=None: list(state["channels"]))
    return state


def _authorize(client, headers) -> str:
    response = client.get("/oauth/youtube/authorize", headers=headers)
    assert response.status_code == 200
    auth_url = response.json()["authUrl"]
    query = parse_qs(urlparse(auth_url).query)
    assert query["client_id"] == ["client-id.apps.googleusercontent.com"]
    assert query["access_type"] == ["offline"]
    assert client.cookies.get(STATE_COOKIE) == query["state"][0]
    return query["state"][0]


def _callback(client, headers, state: str, **params):
    return client.get(
        "/oauth/youtube/callback",
        params={"code": "auth-code", "state": state, **params},
        headers=headers,
        follow_redirects=False,
    )


def _redirect_query(response) -> dict:
    assert response.status_code == 302
    return {key: values[0] for key, values in parse_qs(urlparse(response.headers["location"]).query).items()}


def _youtube_accounts(db_session, user) -> list[SocialAccount]:
    db_session.expire_all()
    return list(
        db_session.execute(
            select(SocialAccount).where(SocialAccount.user_id == user.id, SocialAccount.platform == "YOUTUBE")
        ).scalars()
    )


def test_authorize_requires_session(client, google):
    response = client.get("/oauth/youtube/authorize")

    assert response.status_code == 401
    assert response.json()["error_code"] == "401"


def test_authorize_without_google_config_is_500(client, operator, monkeypatch):
    _, headers = operator
    monkeypatch.setattr(settings, "google_client_id", None)

    response = client.get("/oauth/youtube/authorize", headers=headers)

    assert response.status_code == 500


def test_no_channel_binds_bare_google_identity(client, db_session, operator, google):
    user, headers = operator
    state = _authorize(client, headers)

    response = _callback(client, headers, state)

    assert _redirect_query(response) == {"success": "google_connected_no_channel"}
    assert response.headers["location"].startswith(f"{settings.public_app_url}{settings.accounts_page_path}")
    accounts = _youtube_accounts(db_session, user)
    assert len(accounts) == 1
    assert accounts[0].account_id is None
    assert accounts[0].google_email == "studio@gmail.test"
    assert accounts[0].status == "ACTIVE"
    assert client.cookies.get(STATE_COOKIE) is None


def test_single_channel_binds_channel_with_encrypted_tokens(client, db_session, operator, google):
    user, headers = operator
    google["channels"] = [_channel("UC-one", "Anime Clips")]
    state = _authorize(client, headers)

    response = _callback(client, headers, state)

    assert _redirect_query(response) == {"success": "youtube_connected"}
    accounts = _youtube_accounts(db_session, user)
    assert len(accounts) == 1
    account = accounts[0]
    assert account.account_id == "UC-one"
    assert account.account_name == "Anime Clips"
    assert account.account_url == "https://youtube.com/@animeclips"
    assert account.channel_stats["subscriberCount"] == 1200
    assert account.access_token != "ya29.fresh"
    assert decrypt_token(account.access_token) == "ya29.fresh"
    assert decrypt_token(account.refresh_token) == "1//refresh"


def test_rebinding_same_channel_keeps_account_id(client, db_session, operator, google):
    user, headers = operator
    google["channels"] = [_channel("UC-one", "Anime Clips")]

    _callback(client, headers, _authorize(client, headers))
    first_id = _youtube_accounts(db_session, user)[0].id

    google["channels"] = [_channel("UC-one", "Anime Clips Renamed")]
    _callback(client, headers, _authorize(client, headers))

    accounts = _youtube_accounts(db_session, user)
    assert len(accounts) == 1
    assert accounts[0].id == first_id
    assert accounts[0].account_name == "Anime Clips Renamed"


def test_multiple_channels_persist_nothing_and_redirect_to_selection(client, db_session, operator, google):
    user, headers = operator
    google["channels"] = [
        _channel("UC-a", "Channel A"),
        _channel("UC-b", "Channel B"),
        _channel("UC-c", "Channel C"),
    ]
    state = _authorize(client, headers)

    response = _callback(client, headers, state)

    assert response.status_code == 302
    assert response.headers["location"] == f"{settings.public_app_url}{settings.channel_select_path}"
    assert _youtube_accounts(db_session, user) == []
    assert client.cookies.get(TEMP_AUTH_COOKIE)

    pending = client.get("/oauth/youtube/pending-channels", headers=headers)
    assert pending.status_code == 200
    assert [item["id"] for item in pending.json()["channels"]] == ["UC-a", "UC-b", "UC-c"]
    assert pending.json()["googleEmail"] == "studio@gmail.test"

    confirm = client.post(
        "/oauth/youtube/confirm-channels",
        json={"channelIds": ["UC-a", "UC-c"]},
        headers=headers,
    )
    assert confirm.status_code == 200
    assert confirm.json()["created"] == 2

    accounts = _youtube_accounts(db_session, user)
    assert sorted(account.account_id for account in accounts) == ["UC-a", "UC-c"]
    assert all(decrypt_token(account.access_token) == "ya29.fresh" for account in accounts)
    assert client.cookies.get(TEMP_AUTH_COOKIE) is None


def test_confirm_without_pending_selection_is_rejected(client, operator):
    _, headers = operator

    response = client.post("/oauth/youtube/confirm-channels", json={"channelIds": ["UC-a"]}, headers=headers)

    assert response.status_code == 400


def test_state_mismatch_is_rejected_and_cookie_cleared(client, db_session, operator, google):
    user, headers = operator
    google["channels"] = [_channel("UC-one", "Anime Clips")]
    _authorize(client, headers)

    response = _callback(client, headers, "forged-state")

    assert _redirect_query(response) == {"error": "invalid_state"}
    assert google["codes"] == []
    assert _youtube_accounts(db_session, user) == []
    assert client.cookies.get(STATE_COOKIE) is None


def test_callback_error_branches(client, operator, google):
    _, headers = operator

    denied = client.get(
        "/oauth/youtube/callback", params={"error": "access_denied"}, headers=headers, follow_redirects=False
    )
    assert _redirect_query(denied) == {"error": "access_denied"}

    missing = client.get("/oauth/youtube/callback", params={"code": "x"}, headers=headers, follow_redirects=False)
    assert _redirect_query(missing) == {"error": "missing_params"}

    anonymous = client.get(
        "/oauth/youtube/callback", params={"code": "x", "state": "y"}, follow_redirects=False
    )
    assert _redirect_query(anonymous) == {"error": "unauthorized"}


def test_token_exchange_failure_redirects_with_error_code(client, operator, google, monkeypatch):
    _, headers = operator

    def failing_exchange(code):
        raise youtube_client.YouTubeApiError("bad code", error_code="token_exchange_failed", status_code=400)

    monkeypatch.setattr(youtube_client, "exchange_code", failing_exchange)
    state = _authorize(client, headers)

    response = _callback(client, headers, state)

    assert _redirect_query(response) == {"error": "token_exchange_failed"}


def _start_channel_selection(client, headers, google) -> None:
    google["channels"] = [_channel("UC-a", "Channel A"), _channel("UC-b", "Channel B")]
    response = _callback(client, headers, _authorize(client, headers))
    assert response.headers["location"] == f"{settings.public_app_url}{settings.channel_select_path}"
    assert client.cookies.get(TEMP_AUTH_COOKIE)


def test_confirm_refresh_mode_accepts_a_single_channel_only(client, db_session, operator, google):
    user, headers = operator
    account = SocialAccount(user_id=user.id, platform="YOUTUBE", account_name="Studio", status="ACTIVE")
    db_session.add(account)
    db_session.commit()
    _start_channel_selection(client, headers, google)

    response = client.post(
        "/oauth/youtube/confirm-channels",
        json={"channelIds": ["UC-a", "UC-b"], "updatingAccountId": str(account.id)},
        headers=headers,
    )

    assert response.status_code == 400
    db_session.expire_all()
    assert db_session.get(SocialAccount, account.id).account_id is None
    assert len(_youtube_accounts(db_session, user)) == 1


def test_confirm_refresh_of_another_users_account_is_forbidden(client, db_session, operator, make_user, google):
    user, headers = operator
    other, _ = make_user(email="other@publishdesk.test")
    foreign = SocialAccount(user_id=other.id, platform="YOUTUBE", account_name="Foreign", status="ACTIVE")
    db_session.add(foreign)
    db_session.commit()
    _start_channel_selection(client, headers, google)

    response = client.post(
        "/oauth/youtube/confirm-channels",
        json={"channelIds": ["UC-a"], "updatingAccountId": str(foreign.id)},
        headers=headers,
    )

    assert response.status_code == 403
    db_session.expire_all()
    assert db_session.get(SocialAccount, foreign.id).account_id is None
    assert _youtube_accounts(db_session, user) == []


def test_userinfo_failure_redirects_with_error_code(client, db_session, operator, google, monkeypatch):
    user, headers = operator

    def failing_userinfo(access_token):
        raise youtube_client.YouTubeApiError("denied", error_code="userinfo_fetch_failed", status_code=401)

    monkeypatch.setattr(youtube_client, "fetch_userinfo", failing_userinfo)
    state = _authorize(client, headers)

    response = _callback(client, headers, state)

    assert _redirect_query(response) == {"error": "userinfo_fetch_failed"}
    assert _youtube_accounts(db_session, user) == []


def test_channel_list_failure_redirects_with_error_code(client, db_session, operator, google, monkeypatch):
    user, headers = operator

    def failing_channels(access_token, channel_id=None):
        raise youtube_client.YouTubeApiError("quota", error_code="channel_fetch_failed", status_code=403)

    monkeypatch.setattr(youtube_client, "list_channels", failing_channels)
    state = _authorize(client, headers)

    response = _callback(client, headers, state)

    assert _redirect_query(response) == {"error": "channel_fetch_failed"}
    assert _youtube_accounts(db_session, user) == []
    assert client.cookies.get(STATE_COOKIE) is None
