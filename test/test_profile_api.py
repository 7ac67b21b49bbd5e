# test/test_profile_api.py - profile endpoints


def test_get_profile(client, student):
    body = client.get("/api/profile", headers=student["headers"]).json()
    assert body["email"] == student["email"]
    assert body["name"] == "Student One"
    assert body["role"] == "student"
    assert body["batch"] == "BCR-42"


def test_update_profile(client, student):
    response = client.patch(
        "/api/profile",
        json={"name": "  Student Uno ", "phone": "+91 90000 00000", "batch": ""},
        headers=student["headers"]
    )
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Student Uno"
    assert body["phone"] == "+91 90000 00000"
    assert body["batch"] is None
    assert client.get("/api/profile", headers=student["headers"]).json()["name"] == "Student Uno"


def test_blank_name_rejected(client, student):
    response = client.patch("/api/profile", json={"name": "   "}, headers=student["headers"])
    assert response.status_code == 400
    assert response.json() == {"error": "Name cannot be empty"}


def test_invalid_token(client):
    response = client.get("/api/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid authentication credentials"}
