# test/test_auth_api.py - sign-up, login, refresh
from conftest import PASSWORD
from database.models import AuditLog


def signup(client, email="new@brotodesk.test", password=PASSWORD):
    return client.post(
        "/api/auth/signup",
        json={"name": "New Student", "email": email, "password": password, "batch": "BCR-7"}
    )


def test_signup_creates_student(client):
    response = signup(client)
    assert response.status_code == 201
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == "student"
    assert body["user"]["batch"] == "BCR-7"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.json()["email"] == "new@brotodesk.test"


def test_signup_duplicate_email(client, student):
    response = signup(client, email=student["email"])
    assert response.status_code == 400
    assert response.json() == {"error": "User with this email already exists"}


def test_signup_weak_password(client):
    response = signup(client, password="abc")
    assert response.status_code == 400
    assert "error" in response.json()


def test_signup_invalid_email(client):
    response = signup(client, email="not-an-email")
    assert response.status_code == 400


def test_login_and_refresh_rotation(client, admin):
    login = client.post("/api/auth/login", json={"email": admin["email"], "password": PASSWORD})
    assert login.status_code == 200
    tokens = login.json()
    assert tokens["user"]["role"] == "admin"

    refreshed = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["refresh_token"] != tokens["refresh_token"]

    # The old refresh token was revoked by the rotation
    reused = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert reused.status_code == 401
    assert reused.json() == {"error": "Invalid refresh token"}


def test_login_wrong_password_is_audited(client, session, student):
    response = client.post("/api/auth/login", json={"email": student["email"], "password": "Wrong#999"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid email or password"}
    assert session.query(AuditLog).filter(AuditLog.action == "login_failed").count() == 1


def test_refresh_with_garbage(client):
    response = client.post("/api/auth/refresh", json={"refresh_token": "garbage"})
    assert response.status_code == 401


def test_logout_revokes_refresh_token(client, student):
    tokens = client.post("/api/auth/login", json={"email": student["email"], "password": PASSWORD}).json()
    response = client.post(
        "/api/auth/logout", json={"refresh_token": tokens["refresh_token"]}, headers=student["headers"]
    )
    assert response.json() == {"success": True, "revoked": True}
    assert client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401
