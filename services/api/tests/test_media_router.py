import hashlib
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import mock_client
from ourspace.core.cloudinary import CloudinaryClient, public_id_from_url
from ourspace.core.http import get_cloudinary
from ourspace.main import app

API_BASE = "https://api.cloudinary.test/v1_1"


@pytest.fixture
def store():
    """Fake Cloudinary: records requests, answers from `responses` keyed by (method, path suffix)."""
    state = {"requests": [], "responses": {}}

    def handler(request: httpx.Request) -> httpx.Response:
        state["requests"].append(request)
        for (method, suffix), response in state["responses"].items():
            if request.method == method and request.url.path.endswith(suffix):
                return response
        return httpx.Response(404, json={"error": {"message": "Resource not found"}})

    state["handler"] = handler
    return state


@pytest.fixture
def client(store):
    cloudinary = CloudinaryClient("demo", "key123", "S3CR3T", mock_client(store["handler"]), api_base=API_BASE)
    app.dependency_overrides[get_cloudinary] = lambda: cloudinary
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_sign_returns_signature_over_exact_params(client):
    r = client.post("/media/sign", json={"paramsToSign": {"timestamp": 1700000000, "public_id": "abc123"}})

    assert r.status_code == 200
    assert r.json() == {
        "signature": hashlib.sha1(b"public_id=abc123&timestamp=1700000000S3CR3T").hexdigest(),
        "apiKey": "key123",
        "cloudName": "demo",
    }
    assert "S3CR3T" not in r.text


def test_sign_requires_params(client):
    r = client.post("/media/sign", json={})

    assert r.status_code == 400
    assert r.json() == {"error": "Missing paramsToSign"}


def test_sign_without_credentials_is_a_server_error():
    app.dependency_overrides[get_cloudinary] = lambda: CloudinaryClient("", "", "", mock_client(lambda r: httpx.Response(500)))
    try:
        r = TestClient(app).post("/media/sign", json={"paramsToSign": {"timestamp": 1}})
    finally:
        app.dependency_overrides.clear()

    assert r.status_code == 500
    assert "error" in r.json()


def test_delete_signs_public_id_and_timestamp(client, store):
    store["responses"][("POST", "/demo/image/destroy")] = httpx.Response(200, json={"result": "ok"})

    r = client.post("/media/delete", json={"public_id": "ourspace/beach", "resource_type": "image"})

    assert r.status_code == 200
    assert r.json() == {"success": True, "data": {"result": "ok"}}
    form = {k: v[0] for k, v in parse_qs(store["requests"][0].content.decode()).items()}
    expected = hashlib.sha1(f"public_id=ourspace/beach&timestamp={form['timestamp']}S3CR3T".encode()).hexdigest()
    assert form["signature"] == expected
    assert form["api_key"] == "key123"


def test_delete_not_found_is_reported_as_error(client, store):
    store["responses"][("POST", "/demo/video/destroy")] = httpx.Response(200, json={"result": "not found"})

    r = client.post("/media/delete", json={"public_id": "gone", "resource_type": "video"})

    assert r.status_code == 500
    assert r.json() == {"error": {"result": "not found"}}


@pytest.mark.parametrize("body", [{"public_id": "x"}, {"resource_type": "image"}, {"public_id": "x", "resource_type": "raw"}])
def test_delete_validates_input(client, body):
    r = client.post("/media/delete", json=body)

    assert r.status_code == 400


def test_resources_lists_newest_first_with_context(client, store):
    store["responses"][("GET", "/demo/resources/video")] = httpx.Response(200, json={
        "resources": [{"public_id": "clip", "secure_url": "https://x/upload/clip.mp4"}],
        "next_cursor": "abc",
    })

    r = client.get("/media/resources", params={"type": "video", "next_cursor": "prev"})

    assert r.status_code == 200
    assert r.json()["next_cursor"] == "abc"
    request = store["requests"][0]
    assert request.url.params["max_results"] == "50"
    assert request.url.params["direction"] == "desc"
    assert request.url.params["context"] == "true"
    assert request.url.params["next_cursor"] == "prev"
    assert request.headers["authorization"].startswith("Basic ")


def test_gallery_returns_normalized_items(client, store):
    store["responses"][("GET", "/demo/resources/video")] = httpx.Response(200, json={
        "resources": [{
            "public_id": "clip",
            "secure_url": "https://x/upload/v1/clip.mp4",
            "duration": 75,
            "context": {"custom": {"caption": "Liburan", "cover_gravity": "north"}},
        }],
    })

    r = client.get("/media/gallery", params={"type": "video"})

    assert r.status_code == 200
    item = r.json()["items"][0]
    assert item["title"] == "Liburan"
    assert item["duration"] == "1:15"
    assert item["thumbnail_url"] == "https://x/upload/so_0,g_north,w_500,h_280,c_fill,q_auto,f_auto/v1/clip.jpg"
    assert r.json()["next_cursor"] is None


def test_listing_error_payload_is_a_server_error(client, store):
    store["responses"][("GET", "/demo/resources/image")] = httpx.Response(401, json={"error": {"message": "Invalid api_key"}})

    r = client.get("/media/resources")

    assert r.status_code == 500
    assert r.json() == {"error": {"message": "Invalid api_key"}}


def test_listing_rejects_unknown_type(client):
    assert client.get("/media/gallery", params={"type": "raw"}).status_code == 400


def test_public_id_from_url():
    assert public_id_from_url("https://res.cloudinary.com/demo/image/upload/v1700/ourspace/beach.png") == "ourspace/beach"
    assert public_id_from_url("https://res.cloudinary.com/demo/image/upload/sample.jpg") == "sample"
    assert public_id_from_url("https://example.com/a.png") is None


def test_malformed_params_to_sign_is_a_400(client):
    r = client.post("/media/sign", json={"paramsToSign": ["a", "b"]})

    assert r.status_code == 400
    assert r.json()["error"].startswith("paramsToSign:")


def test_non_string_public_id_is_a_400(client):
    r = client.post("/media/delete", json={"public_id": 123, "resource_type": "image"})

    assert r.status_code == 400
    assert "public_id" in r.json()["error"]
