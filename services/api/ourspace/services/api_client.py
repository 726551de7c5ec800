"""Async client for the OurSpace API, used by scripts and by client-side pipelines."""
import json
import logging

import httpx

from ourspace.services.uploader import RemoteSigner, SignedUploader

logger = logging.getLogger(__name__)


class ApiClient:
    def __init__(self, api_url: str, client: httpx.AsyncClient):
        self.api_url = api_url.rstrip("/")
        self._client = client

    def uploader(self, cloudinary_api_base: str = "https://api.cloudinary.com/v1_1") -> SignedUploader:
        return SignedUploader(RemoteSigner(self.api_url, self._client), self._client, api_base=cloudinary_api_base)

    async def destroy(self, public_id: str, resource_type: str = "image") -> dict:
        """Delete through POST /media/delete. Returns Cloudinary's payload either way."""
        r = await self._client.post(
            f"{self.api_url}/media/delete",
            json={"public_id": public_id, "resource_type": resource_type},
        )
        data = r.json()
        if data.get("success"):
            return data.get("data") or {"result": "ok"}
        err = data.get("error")
        return err if isinstance(err, dict) else {"result": "error", "error": err}

    async def list_resources(self, resource_type: str = "image", next_cursor: str | None = None) -> dict:
        params = {"type": resource_type}
        if next_cursor:
            params["next_cursor"] = next_cursor
        r = await self._client.get(f"{self.api_url}/media/resources", params=params)
        r.raise_for_status()
        return r.json()

    async def ai_photo(self, image_url: str, prompt: str):
        """Yield one {model, status, url|error} dict per model, in the order they finish."""
        async with self._client.stream(
            "POST", f"{self.api_url}/tools/ai-photo", json={"imageUrl": image_url, "prompt": prompt}
        ) as r:
            if r.is_error:
                await r.aread()
                r.raise_for_status()
            async for line in r.aiter_lines():
                if line.strip():
                    yield json.loads(line)

    async def upscale(self, image_url: str, scale: int = 2) -> dict:
        r = await self._client.post(f"{self.api_url}/tools/upscale", json={"imageUrl": image_url, "scale": scale})
        r.raise_for_status()
        return r.json()
