"""AI media tools: background removal (Pitucode), upscaling (Nekolabs), photo generation (three models)."""
import asyncio
import base64
import binascii
import logging

import httpx

from ourspace.schemas.tools import ModelResult
from ourspace.services.retry import ExternalCallError, RetryExecutor, truncate_message

logger = logging.getLogger(__name__)

PITUCODE_REMOVE_BG_URL = "https://api.pitucode.com/ai/removebg2"


class ProviderError(Exception):
    """A tool backend failed; status_code is what the API should answer with."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


def photo_models(nekolabs_base: str, ryzumi_base: str) -> list[tuple[str, str, str]]:
    """(key, display name, endpoint) for each generative model."""
    nekolabs_base = nekolabs_base.rstrip("/")
    ryzumi_base = ryzumi_base.rstrip("/")
    return [
        ("nano_banana", "Nano Banana", f"{nekolabs_base}/image.gen/nano-banana"),
        ("gpt_image", "GPT Image", f"{nekolabs_base}/image.gen/gpt/image-1"),
        ("gemini", "Gemini", f"{ryzumi_base}/api/ai/edit"),
    ]


async def _run_model(executor: RetryExecutor, key: str, name: str, endpoint: str,
                     image_url: str, prompt: str) -> tuple[str, ModelResult]:
    try:
        result = await executor.call(endpoint, name=name, params={"prompt": prompt, "imageUrl": image_url})
        return key, ModelResult(status="ok", url=result.as_url())
    except ExternalCallError as e:
        return key, ModelResult(status="error", error=truncate_message(str(e)))
    except Exception as e:
        logger.exception("ai_media: %s crashed", name)
        return key, ModelResult(status="error", error=truncate_message(str(e) or type(e).__name__))


async def iter_photo_results(executor: RetryExecutor, image_url: str, prompt: str,
                             models: list[tuple[str, str, str]]):
    """Run every model concurrently and yield (key, ModelResult) as each one settles."""
    tasks = [
        asyncio.ensure_future(_run_model(executor, key, name, endpoint, image_url, prompt))
        for key, name, endpoint in models
    ]
    try:
        for settled in asyncio.as_completed(tasks):
            yield await settled
    finally:
        # Settled tasks ignore this; the rest stop if the stream is abandoned
        for task in tasks:
            task.cancel()


async def upscale_image(executor: RetryExecutor, nekolabs_base: str, image_url: str, scale: int = 2) -> str:
    result = await executor.call(
        f"{nekolabs_base.rstrip('/')}/tools/upscale/supawork",
        name="Upscale",
        params={"imageUrl": image_url, "scale": scale},
    )
    return result.as_url()


def decode_data_uri(data_uri: str) -> bytes:
    """Bytes from "data:image/png;base64,...."."""
    encoded = data_uri.split(";base64,")[-1]
    if not encoded or encoded == data_uri:
        raise ProviderError("Invalid Base64 format")
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProviderError("Invalid Base64 format") from e


async def remove_background(client: httpx.AsyncClient, *, api_key: str, username: str,
                            image_url: str | None = None, image_bytes: bytes | None = None,
                            filename: str = "image.jpg") -> bytes:
    """Return PNG bytes with the background removed. URLs go form-encoded, files go multipart."""
    params = {"apikey": api_key, "username": username}
    if image_url:
        logger.info("remove_bg: sending URL via form-urlencoded")
        r = await client.post(PITUCODE_REMOVE_BG_URL, params=params, data={"image": image_url})
    else:
        logger.info("remove_bg: sending file via multipart (%d bytes)", len(image_bytes or b""))
        r = await client.post(PITUCODE_REMOVE_BG_URL, params=params, files={"image": (filename, image_bytes or b"")})
    logger.info("remove_bg: Pitucode status=%s", r.status_code)

    if not r.is_success:
        message = r.text
        try:
            body = r.json()
            if isinstance(body, dict) and body.get("message"):
                message = body["message"]
        except ValueError:
            pass
        raise ProviderError(f"Pitucode Error: {truncate_message(message)}", status_code=r.status_code)

    if "application/json" not in r.headers.get("content-type", ""):
        return r.content

    data = r.json()
    if not isinstance(data, dict):
        raise ProviderError("Unknown response format")
    payload = data.get("data")
    if isinstance(payload, str) and payload.startswith("data:image"):
        return decode_data_uri(payload)
    media = data.get("media") if isinstance(data.get("media"), dict) else {}
    result_url = data.get("url") or data.get("result") or media.get("url")
    if result_url:
        logger.info("remove_bg: fetching result image from %s", result_url)
        img = await client.get(result_url)
        if not img.is_success:
            raise ProviderError("Failed to download result image")
        return img.content
    raise ProviderError(f"Unknown response format. Keys: {', '.join(data)}")
