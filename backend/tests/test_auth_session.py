from publishdesk.core.config import settings


def test_login_sets_cookie_and_me_accepts_it(client, operator):
    user, _ = operator

    response = client.post("/auth/login", json={"email": user.email, "password": "secret123"})

    assert response.status_code == 200
    assert response.json()["token_type"] == "bearer"
    assert response.json()["user"]["role"] == "OPERATOR"
    assert client.cookies.get(settings.auth_cookie_name) == response.json()["access_token"]

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["email"] == user.email


def test_login_rejects_bad_password(client, operator):
    user, _ = operator

    response = client.post("/auth/login", json={"email": user.email, "password": "wrong"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"


def test_logout_revokes_token(client, operator):
    _, headers = operator

    assert client.post("/auth/logout", headers=headers).json() == {"success": True}

    response = client.get("/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["message"] == "Token revoked"


def test_invalid_bearer_token_is_rejected(client):
    response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_health_and_security_headers(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["services"]["api"] == "up"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Request-ID"]


def test_metrics_endpoint_exposes_counters(client):
    client.get("/health")

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "total_requests" in response.text
