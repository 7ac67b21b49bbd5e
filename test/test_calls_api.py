# test/test_calls_api.py - call endpoints
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from app import app
from routers.calls import get_video_provider, get_voice_provider
from services.call_providers import (
    DailyRoomProvider, DailySettings, VideoSDKRoomProvider, VideoSDKSettings
)
import config


def daily_upstream(request):
    body = json.loads(request.content)
    return httpx.Response(200, json={"name": body["name"], "url": f"https://brotodesk.daily.co/{body['name']}"})


def vsdk_upstream(request):
    return httpx.Response(200, json={"roomId": "room-123"})


@pytest.fixture
def providers():
    app.dependency_overrides[get_video_provider] = lambda: DailyRoomProvider(
        DailySettings(api_key="k", api_url="https://daily.test/v1", timeout=5.0),
        transport=httpx.MockTransport(daily_upstream)
    )
    app.dependency_overrides[get_voice_provider] = lambda: VideoSDKRoomProvider(
        VideoSDKSettings(api_key="k", secret="s", api_url="https://vsdk.test/v2", timeout=5.0),
        transport=httpx.MockTransport(vsdk_upstream)
    )


def test_video_room_requires_auth(client, providers, complaint):
    response = client.post("/api/calls/video-room", json={"complaintId": complaint})
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_video_room_missing_complaint_id(client, providers, admin):
    response = client.post("/api/calls/video-room", json={}, headers=admin["headers"])
    assert response.status_code == 400
    assert "error" in response.json()


def test_video_room_unknown_complaint(client, providers, admin):
    response = client.post("/api/calls/video-room", json={"complaintId": "nope"}, headers=admin["headers"])
    assert response.status_code == 404
    assert response.json() == {"error": "Complaint not found"}


def test_admin_video_room_flow(client, providers, admin, student, complaint):
    response = client.post("/api/calls/video-room", json={"complaintId": complaint}, headers=admin["headers"])
    assert response.status_code == 200
    room = response.json()
    assert room["roomUrl"].startswith("https://brotodesk.daily.co/")
    assert room["videoCallId"]

    # The student sees the pending call and a notification
    active = client.get("/api/calls/active", headers=student["headers"]).json()["data"]
    assert [c["id"] for c in active] == [room["videoCallId"]]
    assert active[0]["complaintTitle"] == "Wifi down in hostel"

    notifications = client.get("/api/notifications", headers=student["headers"]).json()
    assert notifications["unreadCount"] == 1
    assert notifications["data"][0]["type"] == "call_request"
    assert notifications["data"][0]["complaintId"] == complaint

    by_complaint = client.get(f"/api/complaints/{complaint}/calls/active", headers=student["headers"]).json()
    assert by_complaint["call"]["id"] == room["videoCallId"]

    ended = client.post(f"/api/calls/{room['videoCallId']}/end", headers=student["headers"])
    assert ended.status_code == 200
    assert ended.json()["status"] == "ended"
    assert client.get("/api/calls/active", headers=student["headers"]).json() == {"data": []}
    assert client.get(f"/api/complaints/{complaint}/calls/active", headers=student["headers"]).json() == {"call": None}


def test_second_video_room_replaces_first(client, providers, admin, complaint):
    first = client.post("/api/calls/video-room", json={"complaintId": complaint}, headers=admin["headers"]).json()
    second = client.post("/api/calls/video-room", json={"complaintId": complaint}, headers=admin["headers"]).json()
    active = client.get("/api/calls/active", headers=admin["headers"]).json()["data"]
    assert [c["id"] for c in active] == [second["videoCallId"]]
    assert first["videoCallId"] != second["videoCallId"]


def test_voice_room_forbidden_for_students(client, providers, student, complaint):
    response = client.post("/api/calls/voice-room", json={"complaintId": complaint}, headers=student["headers"])
    assert response.status_code == 403
    assert "error" in response.json()


def test_voice_room_for_admin(client, providers, admin, complaint):
    response = client.post("/api/calls/voice-room", json={"complaintId": complaint}, headers=admin["headers"])
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["roomId"] == "room-123"
    assert body["token"]


def test_end_unknown_call(client, admin):
    response = client.post("/api/calls/does-not-exist/end", headers=admin["headers"])
    assert response.status_code == 404


def test_unconfigured_provider_is_500(client, admin, complaint, monkeypatch):
    monkeypatch.setattr(config, "VIDEO_CALL_PROVIDER", "daily")
    monkeypatch.setattr(config, "DAILY_API_KEY", None)
    response = client.post("/api/calls/video-room", json={"complaintId": complaint}, headers=admin["headers"])
    assert response.status_code == 500
    assert response.json() == {"error": "DAILY_API_KEY is not configured"}


def test_upstream_failure_is_500(client, admin, complaint):
    app.dependency_overrides[get_video_provider] = lambda: DailyRoomProvider(
        DailySettings(api_key="k", api_url="https://daily.test/v1", timeout=5.0),
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="down"))
    )
    response = client.post("/api/calls/video-room", json={"complaintId": complaint}, headers=admin["headers"])
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create video room"}
    assert client.get(f"/api/complaints/{complaint}/calls/active", headers=admin["headers"]).json() == {"call": None}


def test_non_json_room_response_is_json_error(client, admin, complaint):
    app.dependency_overrides[get_video_provider] = lambda: DailyRoomProvider(
        DailySettings(api_key="k", api_url="https://daily.test/v1", timeout=5.0),
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>gateway timeout</html>"))
    )
    response = client.post("/api/calls/video-room", json={"complaintId": complaint}, headers=admin["headers"])
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create video room"}


class BrokenProvider(DailyRoomProvider):
    async def create_room(self, name, expires_at):
        raise RuntimeError("socket exploded")


def test_unexpected_exception_is_json_error(admin, complaint):
    app.dependency_overrides[get_video_provider] = lambda: BrokenProvider(
        DailySettings(api_key="k", api_url="https://daily.test/v1", timeout=5.0)
    )
    try:
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post("/api/calls/video-room", json={"complaintId": complaint}, headers=admin["headers"])
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
