# test/test_assistant_api.py - chat relay and formatter endpoints
import json

import httpx

from app import app
from routers.assistant import get_chat_relay, get_complaint_formatter
from services.ai_gateway import GatewaySettings, ComplaintFormatter, ADMIN_SYSTEM_PROMPT
from services.chat_relay import ChatRelay
import config

SETTINGS = GatewaySettings(
    url="https://gateway.test/v1/chat/completions",
    api_key="gw-key",
    model="test-model",
    connect_timeout=5.0,
)
MESSAGES = [{"role": "user", "content": "What does Waiting for Student mean?"}]


def use_gateway(handler):
    transport = httpx.MockTransport(handler)
    app.dependency_overrides[get_chat_relay] = lambda: ChatRelay(SETTINGS, transport=transport)
    app.dependency_overrides[get_complaint_formatter] = lambda: ComplaintFormatter(SETTINGS, transport=transport)


def sse(*contents):
    body = ": keep-alive\n\n"
    for content in contents:
        body += "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n\n"
    return (body + "data: [DONE]\n\n").encode()


def data_lines(text):
    return [line[len("data: "):] for line in text.split("\n") if line.startswith("data: ")]


def test_chat_streams_event_lines(client, student):
    use_gateway(lambda request: httpx.Response(200, content=sse("The admin ", "needs more info.")))
    response = client.post(
        "/api/assistant/chat", json={"messages": MESSAGES, "userRole": "student"}, headers=student["headers"]
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")

    lines = data_lines(response.text)
    assert lines[-1] == "[DONE]"
    contents = [json.loads(line)["choices"][0]["delta"]["content"] for line in lines[:-1]]
    assert "".join(contents) == "The admin needs more info."


def test_chat_role_defaults_to_caller(client, admin):
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=sse("ok"))

    use_gateway(handler)
    client.post("/api/assistant/chat", json={"messages": MESSAGES}, headers=admin["headers"])
    assert seen["body"]["messages"][0]["content"] == ADMIN_SYSTEM_PROMPT


def test_chat_rate_limited(client, student):
    use_gateway(lambda request: httpx.Response(429, json={"error": "slow down"}))
    response = client.post("/api/assistant/chat", json={"messages": MESSAGES}, headers=student["headers"])
    assert response.status_code == 429
    assert response.json() == {"error": "Too many requests. Please wait a moment."}


def test_chat_credits_exhausted(client, student):
    use_gateway(lambda request: httpx.Response(402, json={"error": "pay up"}))
    response = client.post("/api/assistant/chat", json={"messages": MESSAGES}, headers=student["headers"])
    assert response.status_code == 402
    assert "error" in response.json()


def test_chat_gateway_failure(client, student):
    use_gateway(lambda request: httpx.Response(500, text="boom"))
    response = client.post("/api/assistant/chat", json={"messages": MESSAGES}, headers=student["headers"])
    assert response.status_code == 500
    assert response.json() == {"error": "AI gateway error"}


def test_chat_empty_messages(client, student):
    use_gateway(lambda request: httpx.Response(200, content=sse("x")))
    response = client.post("/api/assistant/chat", json={"messages": []}, headers=student["headers"])
    assert response.status_code == 400


def test_chat_requires_auth(client):
    use_gateway(lambda request: httpx.Response(200, content=sse("x")))
    assert client.post("/api/assistant/chat", json={"messages": MESSAGES}).status_code == 401


def test_chat_unconfigured_gateway(client, student, monkeypatch):
    monkeypatch.setattr(config, "AI_GATEWAY_API_KEY", None)
    response = client.post("/api/assistant/chat", json={"messages": MESSAGES}, headers=student["headers"])
    assert response.status_code == 500
    assert response.json() == {"error": "AI_GATEWAY_API_KEY is not configured"}


def test_format_complaint(client, student):
    use_gateway(lambda request: httpx.Response(
        200, json={"choices": [{"message": {"content": "I am facing a recurring wifi outage..."}}]}
    ))
    response = client.post(
        "/api/assistant/format-complaint",
        json={"description": "wifi keeps dropping at night", "category": "Internet"},
        headers=student["headers"]
    )
    assert response.status_code == 200
    assert response.json() == {"formattedText": "I am facing a recurring wifi outage..."}


def test_format_complaint_short_description(client, student):
    use_gateway(lambda request: httpx.Response(200, json={}))
    response = client.post(
        "/api/assistant/format-complaint", json={"description": "wifi"}, headers=student["headers"]
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Description must be at least 10 characters"}
