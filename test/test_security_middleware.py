# test/test_security_middleware.py - rate limits and response headers
from fastapi import FastAPI
from fastapi.testclient import TestClient

from middleware.security import RateLimitMiddleware, SecurityHeadersMiddleware, SlidingWindow


def limited_app(per_minute=3, per_hour=100, assistant_per_minute=1):
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=per_minute,
        requests_per_hour=per_hour,
        assistant_per_minute=assistant_per_minute
    )

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/api/complaints")
    async def complaints():
        return {"data": []}

    @app.get("/api/assistant/ping")
    async def assistant():
        return {"ok": True}

    @app.get("/api/auth/me")
    async def me():
        return {"id": "u1"}

    return TestClient(app)


def test_sliding_window_expires_old_hits():
    window = SlidingWindow(limit=2, seconds=60)
    window.record("ip", 0.0)
    window.record("ip", 10.0)
    assert window.retry_after("ip", 30.0) == 30
    assert window.retry_after("ip", 60.0) is None

    window.prune(200.0)
    assert window.hits == {}


def test_api_limit_returns_429_with_retry_after():
    client = limited_app(per_minute=3)
    for _ in range(3):
        assert client.get("/api/complaints").status_code == 200

    response = client.get("/api/complaints")
    assert response.status_code == 429
    assert response.json() == {"error": "Rate limit exceeded. Please try again later."}
    assert int(response.headers["Retry-After"]) >= 1


def test_assistant_has_its_own_budget():
    client = limited_app(per_minute=10, assistant_per_minute=1)
    assert client.get("/api/assistant/ping").status_code == 200
    assert client.get("/api/assistant/ping").status_code == 429
    # The rejected assistant call did not use up the general budget
    assert client.get("/api/complaints").status_code == 200


def test_health_is_not_limited():
    client = limited_app(per_minute=1)
    for _ in range(5):
        assert client.get("/health").status_code == 200
    assert client.get("/api/complaints").status_code == 200


def test_security_headers():
    client = limited_app()
    response = client.get("/api/complaints")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "no-store" not in response.headers.get("Cache-Control", "")

    assert client.get("/api/auth/me").headers["Cache-Control"] == "no-store"
