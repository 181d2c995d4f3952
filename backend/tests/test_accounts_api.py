from datetime import UTC, datetime, timedelta

from publishdesk.core.security import encrypt_token
from publishdesk.domain.models.social_account import SocialAccount
from publishdesk.domain.models.user import UserRole
from publishdesk.integrations import youtube_client


def _create(client, headers, platform="INSTAGRAM", name="anime.daily"):
    return client.post("/accounts", json={"platform": platform, "accountName": name}, headers=headers)


def test_accounts_require_session(client):
    response = client.get("/accounts")

    assert response.status_code == 401
    body = response.json()
    assert body["error_code"] == "401"
    assert body["message"] == "Not authenticated"
    assert body["trace_id"] == response.headers["X-Request-ID"]


def test_create_list_and_filter_accounts(client, operator):
    _, headers = operator

    created = _create(client, headers)
    assert created.status_code == 201
    assert created.json()["status"] == "ACTIVE"
    assert created.json()["accountName"] == "anime.daily"

    _create(client, headers, platform="THREADS", name="anime.threads")
    _create(client, headers, platform="THREADS", name="manga.threads")

    listed = client.get("/accounts", params={"platform": "THREADS", "pageSize": 1}, headers=headers)
    assert listed.status_code == 200
    assert listed.json()["total"] == 2
    assert len(listed.json()["items"]) == 1
    assert listed.json()["pageSize"] == 1

    searched = client.get("/accounts", params={"search": "MANGA"}, headers=headers)
    assert [item["accountName"] for item in searched.json()["items"]] == ["manga.threads"]


def test_duplicate_account_name_is_rejected(client, operator):
    _, headers = operator
    _create(client, headers)

    response = _create(client, headers)

    assert response.status_code == 400


def test_schema_mismatch_returns_field_details(client, operator):
    _, headers = operator

    response = client.post("/accounts", json={"platform": "MYSPACE", "accountName": ""}, headers=headers)

    assert response.status_code == 400
    body = response.json()
    assert body["error_code"] == "validation_error"
    assert {tuple(item["loc"]) for item in body["details"]} >= {("body", "platform"), ("body", "accountName")}


def test_other_users_account_is_forbidden(client, operator, make_user):
    _, headers = operator
    _, other_headers = make_user(email="other@publishdesk.test")
    account_id = _create(client, headers).json()["id"]

    assert client.get(f"/accounts/{account_id}", headers=other_headers).status_code == 403
    assert client.delete(f"/accounts/{account_id}", headers=other_headers).status_code == 403


def test_toggle_update_stats_and_delete(client, operator):
    _, headers = operator
    account_id = _create(client, headers).json()["id"]
    _create(client, headers, platform="YOUTUBE", name="Anime Clips")

    toggled = client.post(f"/accounts/{account_id}/toggle-status", headers=headers)
    assert toggled.json()["status"] == "DISABLED"

    active_only = client.get("/accounts/by-platform/INSTAGRAM", headers=headers)
    assert active_only.json()["items"] == []
    everything = client.get("/accounts/by-platform/INSTAGRAM", params={"activeOnly": "false"}, headers=headers)
    assert len(everything.json()["items"]) == 1

    stats = client.get("/accounts/stats", headers=headers).json()
    assert stats["total"] == 2
    assert stats["active"] == 1
    assert stats["disabled"] == 1
    assert stats["byPlatform"] == {"INSTAGRAM": 1, "THREADS": 0, "YOUTUBE": 1}

    updated = client.patch(f"/accounts/{account_id}", json={"accountName": "anime.weekly"}, headers=headers)
    assert updated.json()["accountName"] == "anime.weekly"
    assert updated.json()["status"] == "DISABLED"

    reactivated = client.post(f"/accounts/{account_id}/toggle-status", headers=headers)
    assert reactivated.json()["status"] == "ACTIVE"

    assert client.delete(f"/accounts/{account_id}", headers=headers).status_code == 204
    assert client.get(f"/accounts/{account_id}", headers=headers).status_code == 404


def test_toggle_leaves_pending_and_expired_accounts_alone(client, db_session, operator):
    user, headers = operator
    pending = SocialAccount(user_id=user.id, platform="YOUTUBE", account_name="Pending", status="PENDING")
    expired = SocialAccount(user_id=user.id, platform="INSTAGRAM", account_name="Expired", status="EXPIRED")
    db_session.add_all([pending, expired])
    db_session.commit()

    for account, expected in ((pending, "PENDING"), (expired, "EXPIRED")):
        response = client.post(f"/accounts/{account.id}/toggle-status", headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == expected


def test_update_cannot_reactivate_expired_account(client, db_session, operator):
    user, headers = operator
    account = SocialAccount(user_id=user.id, platform="INSTAGRAM", account_name="anime.daily", status="EXPIRED")
    db_session.add(account)
    db_session.commit()

    response = client.patch(
        f"/accounts/{account.id}", json={"accountName": "anime.weekly", "status": "ACTIVE"}, headers=headers
    )

    assert response.status_code == 200
    assert response.json()["accountName"] == "anime.weekly"
    assert response.json()["status"] == "EXPIRED"
    db_session.expire_all()
    assert db_session.get(SocialAccount, account.id).status == "EXPIRED"


def test_update_clears_optional_links(client, operator):
    _, headers = operator
    created = client.post(
        "/accounts",
        json={
            "platform": "THREADS",
            "accountName": "anime.threads",
            "accountUrl": "https://threads.net/@anime.threads",
            "avatarUrl": "https://img.test/avatar.png",
        },
        headers=headers,
    ).json()

    response = client.patch(f"/accounts/{created['id']}", json={"accountUrl": None}, headers=headers)

    assert response.status_code == 200
    assert response.json()["accountUrl"] is None
    assert response.json()["avatarUrl"] == "https://img.test/avatar.png"
    assert response.json()["accountName"] == "anime.threads"


def test_refresh_token_rejects_non_youtube_accounts(client, operator):
    _, headers = operator
    account_id = _create(client, headers).json()["id"]

    response = client.post(f"/accounts/{account_id}/refresh-token", headers=headers)

    assert response.status_code == 400


def test_refresh_token_updates_expiry_and_stats(client, db_session, operator, monkeypatch):
    user, headers = operator
    account = SocialAccount(
        user_id=user.id,
        platform="YOUTUBE",
        account_name="Anime Clips",
        account_id="UC-refresh",
        access_token=encrypt_token("stale"),
        refresh_token=encrypt_token("1//refresh"),
        token_expiry=datetime.now(UTC) - timedelta(minutes=1),
        status="ACTIVE",
    )
    db_session.add(account)
    db_session.commit()

    monkeypatch.setattr(youtube_client, "refresh_access_token", lambda token: {"access_token": "fresh", "expires_in": 3600})
    monkeypatch.setattr(
        youtube_client,
        "list_channels",
        lambda access_token, channel_id=None: [
            {"id": "UC-refresh", "statistics": {"subscriberCount": "99", "videoCount": "3", "viewCount": "1000"}}
        ],
    )

    response = client.post(f"/accounts/{account.id}/refresh-token", headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "ACTIVE"
    assert response.json()["channelStats"]["subscriberCount"] == 99


def test_refresh_channel_with_several_channels_hands_off_to_selection(client, db_session, operator, monkeypatch):
    user, headers = operator
    account = SocialAccount(
        user_id=user.id,
        platform="YOUTUBE",
        account_name="Studio",
        access_token=encrypt_token("live"),
        refresh_token=encrypt_token("1//refresh"),
        token_expiry=datetime.now(UTC) + timedelta(hours=1),
        status="ACTIVE",
        google_account_id="google-123",
    )
    db_session.add(account)
    db_session.commit()

    channels = [
        {"id": "UC-a", "snippet": {"title": "Channel A"}, "statistics": {}},
        {"id": "UC-b", "snippet": {"title": "Channel B"}, "statistics": {}},
    ]
    monkeypatch.setattr(youtube_client, "list_channels", lambda access_token, channel_id=None: channels)
    monkeypatch.setattr(youtube_client, "fetch_userinfo", lambda access_token: {"sub": "google-123"})

    response = client.post(f"/accounts/{account.id}/refresh-channel", headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "multi_channel"
    assert response.json()["channelCount"] == 2

    pending = client.get("/oauth/youtube/pending-channels", headers=headers).json()
    assert pending["updatingAccountId"] == str(account.id)

    confirm = client.post(
        "/oauth/youtube/confirm-channels",
        json={"channelIds": ["UC-b"], "updatingAccountId": str(account.id)},
        headers=headers,
    )
    assert confirm.json() == {"updated": 1, "accountIds": [str(account.id)]}
    db_session.expire_all()
    assert db_session.get(SocialAccount, account.id).account_id == "UC-b"


def test_admin_can_manage_own_accounts(client, make_user):
    _, headers = make_user(email="admin@publishdesk.test", role=UserRole.ADMIN)

    assert _create(client, headers).status_code == 201
