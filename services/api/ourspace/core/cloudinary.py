"""
Cloudinary Admin/Upload API helpers used by the server: signed destroy and resource listing.
Uploads themselves go straight from the client to Cloudinary (see services/uploader.py);
the server only issues signatures.
"""
import logging
import re

import httpx

from ourspace.core.signing import sign_params, unix_timestamp

logger = logging.getLogger(__name__)

RESOURCE_TYPES = ("image", "video")
LIST_PAGE_SIZE = 50

# .../upload/v<version>/<public_id>.<ext>
_PUBLIC_ID_RE = re.compile(r"/upload/(?:v\d+/)?(.+)\.[^.]+$")


class CloudinaryError(Exception):
    """Cloudinary answered with an error payload."""

    def __init__(self, message: str, payload=None):
        super().__init__(message)
        self.payload = payload


def upload_endpoint(api_base: str, cloud_name: str, resource_type: str) -> str:
    return f"{api_base.rstrip('/')}/{cloud_name}/{resource_type}/upload"


def public_id_from_url(url: str) -> str | None:
    """Extract the public id from a delivery URL. Returns None if the URL has no /upload/ path."""
    m = _PUBLIC_ID_RE.search(url or "")
    return m.group(1) if m else None


class CloudinaryClient:
    """Thin async wrapper over the Cloudinary REST API. Holds the secret; never returns it."""

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, client: httpx.AsyncClient,
                 api_base: str = "https://api.cloudinary.com/v1_1"):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self._api_secret = api_secret
        self._client = client
        self.api_base = api_base.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self._api_secret)

    def sign(self, params: dict) -> str:
        return sign_params(params, self._api_secret)

    async def destroy(self, public_id: str, resource_type: str = "image", timestamp: int | None = None) -> dict:
        """Delete an asset. Returns Cloudinary's JSON payload ({"result": "ok"} on success)."""
        timestamp = timestamp or unix_timestamp()
        signature = self.sign({"public_id": public_id, "timestamp": timestamp})
        url = f"{self.api_base}/{self.cloud_name}/{resource_type}/destroy"
        logger.info("cloudinary: destroy public_id=%s resource_type=%s", public_id, resource_type)
        r = await self._client.post(
            url,
            data={
                "public_id": public_id,
                "api_key": self.api_key,
                "timestamp": str(timestamp),
                "signature": signature,
            },
        )
        try:
            return r.json()
        except ValueError:
            raise CloudinaryError(f"Cloudinary destroy returned HTTP {r.status_code}", payload=r.text[:300])

    async def list_resources(self, resource_type: str = "image", next_cursor: str | None = None) -> dict:
        """List newest-first resources with context and tags (Admin API, Basic auth)."""
        params = {
            "max_results": LIST_PAGE_SIZE,
            "context": "true",
            "tags": "true",
            "direction": "desc",
        }
        if next_cursor:
            params["next_cursor"] = next_cursor
        url = f"{self.api_base}/{self.cloud_name}/resources/{resource_type}"
        r = await self._client.get(url, params=params, auth=(self.api_key, self._api_secret))
        try:
            data = r.json()
        except ValueError:
            raise CloudinaryError(f"Cloudinary listing returned HTTP {r.status_code}", payload=r.text[:300])
        if isinstance(data, dict) and data.get("error"):
            raise CloudinaryError("Cloudinary listing failed", payload=data["error"])
        return data
