import base64
import json
from contextlib import asynccontextmanager

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import mock_client
from ourspace.core.http import get_http_client, get_retry_executor, get_streaming_executor
from ourspace.main import app
from ourspace.services.retry import RetryExecutor

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 6000


async def _no_sleep(seconds):
    return None


@pytest.fixture
def use_upstream():
    """Route every outbound call of the app through `handler`."""

    def install(handler, max_attempts=2):
        async def get_test_http_client():
            async with mock_client(handler) as client:
                yield client

        def get_test_executor():
            return RetryExecutor(mock_client(handler), max_attempts=max_attempts, sleep=_no_sleep)

        @asynccontextmanager
        async def open_test_executor():
            async with mock_client(handler) as client:
                yield RetryExecutor(client, max_attempts=max_attempts, sleep=_no_sleep)

        app.dependency_overrides[get_http_client] = get_test_http_client
        app.dependency_overrides[get_retry_executor] = get_test_executor
        app.dependency_overrides[get_streaming_executor] = lambda: open_test_executor
        return TestClient(app)

    yield install
    app.dependency_overrides.clear()


def test_ai_photo_reports_each_model_independently(use_upstream):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/image.gen/nano-banana"):
            return httpx.Response(200, json={"result": "https://cdn.example/nano.png"})
        if request.url.path.endswith("/image.gen/gpt/image-1"):
            return httpx.Response(400, text="prompt rejected")
        return httpx.Response(200, content=PNG, headers={"content-type": "image/png"})

    client = use_upstream(handler)
    r = client.post("/tools/ai-photo", json={"imageUrl": "https://x/upload/me.jpg", "prompt": "watercolor"})

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/x-ndjson")
    lines = [json.loads(line) for line in r.text.splitlines() if line]
    assert len(lines) == 3
    results = {line.pop("model"): line for line in lines}
    assert results["nano_banana"] == {"status": "ok", "url": "https://cdn.example/nano.png"}
    assert results["gpt_image"]["status"] == "error"
    assert "prompt rejected" in results["gpt_image"]["error"]
    assert results["gemini"]["status"] == "ok"
    assert results["gemini"]["url"].startswith("data:image/png;base64,")
    assert all(req.url.params["prompt"] == "watercolor" for req in seen)
    assert all(req.url.params["imageUrl"] == "https://x/upload/me.jpg" for req in seen)


def test_ai_photo_requires_image_and_prompt(use_upstream):
    client = use_upstream(lambda r: httpx.Response(500))

    assert client.post("/tools/ai-photo", json={"imageUrl": "https://x/a.jpg"}).status_code == 400


def test_upscale_returns_url(use_upstream):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/tools/upscale/supawork")
        assert request.url.params["scale"] == "4"
        return httpx.Response(200, json={"url": "https://cdn.example/4x.png"})

    r = use_upstream(handler).post("/tools/upscale", json={"imageUrl": "https://x/a.jpg", "scale": 4})

    assert r.status_code == 200
    assert r.json() == {"url": "https://cdn.example/4x.png"}


def test_upscale_exhausted_retries_is_bad_gateway(use_upstream):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(502)

    r = use_upstream(handler, max_attempts=2).post("/tools/upscale", json={"imageUrl": "https://x/a.jpg"})

    assert r.status_code == 502
    assert "HTTP 502" in r.json()["error"]
    assert len(calls) == 2


def test_remove_bg_from_url_returns_png(use_upstream):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "api.pitucode.com"
        assert b"image=https" in request.content
        return httpx.Response(200, content=PNG, headers={"content-type": "image/png"})

    r = use_upstream(handler).post("/tools/remove-bg", json={"imageUrl": "https://x/upload/me.jpg"})

    assert r.status_code == 200
    assert r.headers["content-type"] == "image/png"
    assert "removed-bg.png" in r.headers["content-disposition"]
    assert r.content == PNG


def test_remove_bg_from_file_decodes_data_uri(use_upstream):
    encoded = base64.b64encode(PNG).decode()

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["content-type"].startswith("multipart/form-data")
        return httpx.Response(200, json={"status": True, "data": f"data:image/png;base64,{encoded}"})

    r = use_upstream(handler).post("/tools/remove-bg", files={"image": ("me.jpg", b"jpegbytes", "image/jpeg")})

    assert r.status_code == 200
    assert r.content == PNG


def test_remove_bg_passes_provider_status_through(use_upstream):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Invalid apikey"})

    r = use_upstream(handler).post("/tools/remove-bg", json={"imageUrl": "https://x/a.jpg"})

    assert r.status_code == 401
    assert r.json() == {"error": "Pitucode Error: Invalid apikey"}


def test_remove_bg_requires_image(use_upstream):
    r = use_upstream(lambda r: httpx.Response(500)).post("/tools/remove-bg", json={})

    assert r.status_code == 400


def test_youtube_all_providers_failing_is_bad_gateway(use_upstream):
    r = use_upstream(lambda r: httpx.Response(503)).post("/tools/youtube-downloader", json={"url": "https://youtu.be/x"})

    assert r.status_code == 502
    assert r.json()["details"] == "Status 503"


def test_disaster_nearest_picks_closest_quake(use_upstream):
    feeds = {
        "/DataMKG/TEWS/autogempa.json": {"Infogempa": {"gempa": {
            "Coordinates": "-8.50,115.20", "Magnitudo": "5.1", "Shakemap": "20240817.mmi.jpg",
        }}},
        "/DataMKG/TEWS/gempaterkini.json": {"Infogempa": {"gempa": [
            {"Coordinates": "-6.30,106.90", "Magnitudo": "5.4"},
            {"Coordinates": "bad", "Magnitudo": "5.0"},
        ]}},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "nominatim.openstreetmap.org":
            return httpx.Response(200, json={"address": {"city": "Jakarta", "state": "DKI Jakarta"}})
        if request.url.path in feeds:
            return httpx.Response(200, json=feeds[request.url.path])
        return httpx.Response(503)

    r = use_upstream(handler).get("/tools/disaster-detector/nearest", params={"lat": -6.2, "lon": 106.8})

    assert r.status_code == 200
    body = r.json()
    assert body["quake"]["Magnitudo"] == "5.4"
    assert body["distance_km"] == body["quake"]["distance"]
    assert body["distance_km"] < 20
    assert body["address"] == "Jakarta, DKI Jakarta"
    assert body["shakemap_url"] is None


def test_disaster_detector_fails_without_autogempa(use_upstream):
    r = use_upstream(lambda r: httpx.Response(503)).get("/tools/disaster-detector")

    assert r.status_code == 500
    assert r.json() == {"error": "Failed to fetch AutoGempa"}


def test_investment_falls_back_to_mock_quotes(use_upstream):
    app.state.gold_cache.invalidate()
    r = use_upstream(lambda r: httpx.Response(503)).get("/tools/investment")

    assert r.status_code == 200
    body = r.json()
    assert body["stocks"]["BBCA.JK"]["price"] == 10250
    assert body["gold"]["world"]["isMock"] is True
    assert body["gold"]["antam"]["price"] > 0
    assert body["lastUpdate"].endswith("Z")


def test_health(use_upstream):
    r = use_upstream(lambda r: httpx.Response(503)).get("/health")

    assert r.status_code == 200
    assert json.loads(r.text)["status"] == "ok"


def test_health_reports_integrations_as_booleans(use_upstream):
    body = use_upstream(lambda r: httpx.Response(503)).get("/health").json()

    assert set(body["integrations"]) == {"media_store", "gold_api", "remove_bg"}
    assert all(isinstance(v, bool) for v in body["integrations"].values())


def test_request_id_is_echoed(use_upstream):
    r = use_upstream(lambda r: httpx.Response(503)).get("/health", headers={"X-Request-ID": "abc-123"})

    assert r.headers["x-request-id"] == "abc-123"


def test_nearest_quake_without_coordinates_is_a_400(use_upstream):
    r = use_upstream(lambda r: httpx.Response(503)).get("/tools/disaster-detector/nearest", params={"lat": -6.2})

    assert r.status_code == 400
    assert r.json() == {"error": "lon: Field required"}
