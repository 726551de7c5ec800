import asyncio

import httpx
import pytest

from conftest import mock_client
from ourspace.schemas.media import MediaAsset
from ourspace.services.api_client import ApiClient
from ourspace.services.cleanup import cleanup_temp_asset, temporary_asset


class FakeDeleter:
    def __init__(self, result=None, error=None):
        self.result = result or {"result": "ok"}
        self.error = error
        self.calls = []

    async def destroy(self, public_id, resource_type="image"):
        self.calls.append((public_id, resource_type))
        if self.error:
            raise self.error
        return self.result


class FakeUploader:
    async def upload(self, file, resource_type="image", **kwargs):
        return MediaAsset(public_id="temp/abc", secure_url="https://x/upload/temp/abc.jpg", resource_type=resource_type)


def test_cleanup_treats_not_found_as_done():
    deleter = FakeDeleter({"result": "not found"})

    assert asyncio.run(cleanup_temp_asset(deleter, "temp/abc", "image")) is True
    assert asyncio.run(cleanup_temp_asset(deleter, "temp/abc", "image")) is True
    assert deleter.calls == [("temp/abc", "image"), ("temp/abc", "image")]


def test_cleanup_never_raises():
    deleter = FakeDeleter(error=RuntimeError("store down"))

    assert asyncio.run(cleanup_temp_asset(deleter, "temp/abc", "video")) is False


def test_cleanup_skips_empty_public_id():
    deleter = FakeDeleter()

    assert asyncio.run(cleanup_temp_asset(deleter, "")) is False
    assert deleter.calls == []


def test_temporary_asset_is_deleted_after_success():
    deleter = FakeDeleter()

    async def go():
        async with temporary_asset(FakeUploader(), deleter, b"img", "image") as asset:
            assert deleter.calls == []
            return asset.public_id

    assert asyncio.run(go()) == "temp/abc"
    assert deleter.calls == [("temp/abc", "image")]


def test_temporary_asset_is_deleted_when_transform_fails():
    deleter = FakeDeleter()

    async def go():
        async with temporary_asset(FakeUploader(), deleter, b"img", "image"):
            raise RuntimeError("model failed")

    with pytest.raises(RuntimeError, match="model failed"):
        asyncio.run(go())
    assert deleter.calls == [("temp/abc", "image")]


def test_api_client_destroy_unwraps_server_envelope():
    def handler(request: httpx.Request) -> httpx.Response:
        if b"gone" in request.content:
            return httpx.Response(500, json={"error": {"result": "not found"}})
        return httpx.Response(200, json={"success": True, "data": {"result": "ok"}})

    async def go():
        async with mock_client(handler) as client:
            api = ApiClient("http://api.test", client)
            return await api.destroy("temp/abc"), await api.destroy("gone")

    ok, missing = asyncio.run(go())

    assert ok == {"result": "ok"}
    assert missing == {"result": "not found"}


def test_api_client_ai_photo_yields_each_streamed_result():
    body = (
        '{"model": "gemini", "status": "ok", "url": "https://cdn/g.png"}\n'
        "\n"
        '{"model": "gpt_image", "status": "error", "error": "API Error: 400"}\n'
    )

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/tools/ai-photo"
        return httpx.Response(200, text=body, headers={"content-type": "application/x-ndjson"})

    async def go():
        async with mock_client(handler) as client:
            return [r async for r in ApiClient("http://api.test", client).ai_photo("https://x/a.jpg", "p")]

    results = asyncio.run(go())

    assert [r["model"] for r in results] == ["gemini", "gpt_image"]
    assert results[1]["status"] == "error"
