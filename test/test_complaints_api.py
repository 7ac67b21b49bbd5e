# test/test_complaints_api.py - complaint CRUD endpoints
from pathlib import Path

from conftest import make_complaint
from database.models import ComplaintStatus
import config

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
MP4 = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64

FORM = {
    "title": "Projector broken",
    "category": "System",
    "description": "The projector in lab 3 does not turn on.",
    "location": "Lab 3",
    "urgency": "High",
}


def create(client, user, data=FORM, files=None):
    return client.post("/api/complaints", data=data, files=files, headers=user["headers"])


def test_student_creates_complaint_with_media(client, student):
    files = [
        ("images", ("photo.png", PNG, "image/png")),
        ("images", ("second.png", PNG, "image/png")),
        ("video", ("clip.mp4", MP4, "video/mp4")),
    ]
    response = create(client, student, files=files)
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "Pending"
    assert body["urgency"] == "High"
    assert body["studentId"] == student["id"]
    assert sorted(m["fileType"] for m in body["media"]) == ["image", "image", "video"]

    media = body["media"][0]
    assert media["url"] == f"/api/complaints/{body['id']}/media/{media['id']}/file"
    stored = list(Path(config.UPLOADS_DIR).rglob("*_photo.png"))
    assert len(stored) == 1

    download = client.get(media["url"], headers=student["headers"])
    assert download.status_code == 200

    notifications = client.get("/api/notifications", headers=student["headers"]).json()
    assert notifications["data"][0]["type"] == "new_complaint"
    assert notifications["data"][0]["message"] == "New complaint submitted: Projector broken"


def test_urgency_defaults_to_medium(client, student):
    data = {k: v for k, v in FORM.items() if k != "urgency"}
    assert create(client, student, data=data).json()["urgency"] == "Medium"


def test_admin_cannot_create(client, admin):
    assert create(client, admin).status_code == 403


def test_invalid_category(client, student):
    response = create(client, student, data={**FORM, "category": "Parking"})
    assert response.status_code == 400
    assert "category" in response.json()["error"]


def test_missing_title_is_400(client, student):
    data = {k: v for k, v in FORM.items() if k != "title"}
    response = create(client, student, data=data)
    assert response.status_code == 400
    assert "error" in response.json()


def test_too_many_images(client, student):
    files = [("images", (f"p{i}.png", PNG, "image/png")) for i in range(4)]
    response = create(client, student, files=files)
    assert response.status_code == 400
    assert "at most 3 images" in response.json()["error"]
    assert list(Path(config.UPLOADS_DIR).rglob("*.png")) == []


def test_wrong_media_type(client, student):
    files = [("images", ("notes.txt", b"hello", "text/plain"))]
    assert create(client, student, files=files).status_code == 400


def test_list_scopes_and_filters(client, database, student, other_student, admin):
    make_complaint(database, student["id"], title="Wifi down")
    make_complaint(database, student["id"], title="Leaking tap", status=ComplaintStatus.RESOLVED)
    make_complaint(database, other_student["id"], title="Cold food")

    mine = client.get("/api/complaints", headers=student["headers"]).json()
    assert mine["total"] == 2
    assert {c["title"] for c in mine["data"]} == {"Wifi down", "Leaking tap"}

    everything = client.get("/api/complaints", headers=admin["headers"]).json()
    assert everything["total"] == 3
    assert all("student" in c for c in everything["data"])

    resolved = client.get("/api/complaints", params={"status": "Resolved"}, headers=admin["headers"]).json()
    assert [c["title"] for c in resolved["data"]] == ["Leaking tap"]

    searched = client.get("/api/complaints", params={"search": "food"}, headers=admin["headers"]).json()
    assert [c["title"] for c in searched["data"]] == ["Cold food"]

    paged = client.get("/api/complaints", params={"page": 2, "limit": 2}, headers=admin["headers"]).json()
    assert paged["total"] == 3
    assert len(paged["data"]) == 1


def test_get_other_students_complaint_forbidden(client, other_student, complaint):
    response = client.get(f"/api/complaints/{complaint}", headers=other_student["headers"])
    assert response.status_code == 403


def test_get_unknown_complaint(client, admin):
    response = client.get("/api/complaints/unknown", headers=admin["headers"])
    assert response.status_code == 404
    assert response.json() == {"error": "Complaint not found"}


def test_student_edits_pending_complaint(client, student):
    created = create(client, student, files=[("images", ("photo.png", PNG, "image/png"))]).json()
    media_id = created["media"][0]["id"]

    response = client.patch(
        f"/api/complaints/{created['id']}",
        data={"title": "Projector still broken", "removeMediaIds": media_id},
        headers=student["headers"]
    )
    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "Projector still broken"
    assert body["media"] == []
    assert list(Path(config.UPLOADS_DIR).rglob("*_photo.png")) == []


def test_student_cannot_edit_after_pending(client, database, student):
    complaint_id = make_complaint(database, student["id"], status=ComplaintStatus.IN_PROGRESS)
    response = client.patch(f"/api/complaints/{complaint_id}", data={"title": "x"}, headers=student["headers"])
    assert response.status_code == 403
    assert response.json() == {"error": "Only pending complaints can be edited"}


def test_admin_status_update_notifies_student(client, admin, student, complaint):
    response = client.patch(
        f"/api/complaints/{complaint}/status",
        json={"status": "Resolved", "resolutionNotes": "Router replaced."},
        headers=admin["headers"]
    )
    assert response.status_code == 200
    assert response.json()["status"] == "Resolved"
    assert response.json()["resolutionNotes"] == "Router replaced."

    notifications = client.get("/api/notifications", headers=student["headers"]).json()["data"]
    assert notifications[0]["type"] == "status_update"
    assert notifications[0]["message"] == 'Your complaint "Wifi down in hostel" is now Resolved'


def test_status_update_is_admin_only(client, student, complaint):
    response = client.patch(
        f"/api/complaints/{complaint}/status", json={"status": "Resolved"}, headers=student["headers"]
    )
    assert response.status_code == 403


def test_invalid_status(client, admin, complaint):
    response = client.patch(
        f"/api/complaints/{complaint}/status", json={"status": "Done"}, headers=admin["headers"]
    )
    assert response.status_code == 400


def test_delete_rules(client, database, student, other_student, admin):
    pending = make_complaint(database, student["id"])
    in_progress = make_complaint(database, student["id"], status=ComplaintStatus.IN_PROGRESS)

    assert client.delete(f"/api/complaints/{pending}", headers=other_student["headers"]).status_code == 403
    assert client.delete(f"/api/complaints/{in_progress}", headers=student["headers"]).status_code == 403
    assert client.delete(f"/api/complaints/{pending}", headers=student["headers"]).json() == {"success": True}
    assert client.delete(f"/api/complaints/{in_progress}", headers=admin["headers"]).status_code == 200
    assert client.get("/api/complaints", headers=admin["headers"]).json()["total"] == 0
