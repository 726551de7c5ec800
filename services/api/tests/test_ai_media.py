import asyncio

import httpx

from conftest import mock_client
from ourspace.services.ai_media import iter_photo_results, photo_models
from ourspace.services.retry import RetryExecutor

MODELS = [
    ("slow", "Slow", "https://slow.test/edit"),
    ("fast", "Fast", "https://fast.test/edit"),
]


def test_fast_model_is_reported_while_slow_model_is_still_retrying():
    slow_calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "slow.test":
            slow_calls.append(request)
            if len(slow_calls) == 1:
                return httpx.Response(503)
        return httpx.Response(200, json={"url": f"https://cdn.test/{request.url.host}.png"})

    async def go():
        released = asyncio.Event()

        async def sleep(seconds):
            await released.wait()

        settled = []
        async with mock_client(handler) as client:
            executor = RetryExecutor(client, sleep=sleep)
            async for key, result in iter_photo_results(executor, "https://x/a.jpg", "watercolor", MODELS):
                settled.append((key, result.status))
                released.set()
        return settled

    settled = asyncio.run(go())

    # The slow model cannot retry until the first result has been handed out
    assert settled == [("fast", "ok"), ("slow", "ok")]
    assert len(slow_calls) == 2


def test_every_model_settles_even_when_one_fails():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "slow.test":
            return httpx.Response(400, text="bad prompt")
        return httpx.Response(200, json={"url": "https://cdn.test/ok.png"})

    async def go():
        async with mock_client(handler) as client:
            executor = RetryExecutor(client)
            return {key: result async for key, result in iter_photo_results(executor, "u", "p", MODELS)}

    results = asyncio.run(go())

    assert results["fast"].url == "https://cdn.test/ok.png"
    assert results["slow"].status == "error"
    assert results["slow"].error.startswith("API Error: 400")


def test_photo_models_endpoints():
    keys = {key: endpoint for key, _, endpoint in photo_models("https://neko.test/", "https://ryz.test")}

    assert keys == {
        "nano_banana": "https://neko.test/image.gen/nano-banana",
        "gpt_image": "https://neko.test/image.gen/gpt/image-1",
        "gemini": "https://ryz.test/api/ai/edit",
    }
