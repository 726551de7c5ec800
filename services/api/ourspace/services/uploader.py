"""
Client-side signed upload: ask our API for a signature, then POST the file straight to
Cloudinary. The file never passes through our server.

The parameters that are signed are submitted byte-for-byte unchanged; any drift makes
Cloudinary reject the upload. Uploads are never retried here: a rejected signature or a
stale timestamp would fail the same way again, so the error goes back to the caller.
"""
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx

from ourspace.core.cloudinary import RESOURCE_TYPES, upload_endpoint
from ourspace.core.signing import unix_timestamp
from ourspace.schemas.media import MediaAsset

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class UploadError(Exception):
    """Signature request or direct upload failed. Not retried."""


@dataclass
class SignedCredential:
    signature: str
    api_key: str
    cloud_name: str


Signer = Callable[[dict[str, Any]], Awaitable[SignedCredential]]


def _escape_context(value) -> str:
    return str(value).replace("|", "\\|").replace("=", "\\=")


def encode_context(context: dict) -> str:
    """Cloudinary context string: key=value pairs joined by |, with | and = escaped."""
    return "|".join(f"{_escape_context(k)}={_escape_context(v)}" for k, v in context.items())


class RemoteSigner:
    """Gets signatures from POST /media/sign. The API secret stays on the server."""

    def __init__(self, api_url: str, client: httpx.AsyncClient):
        self.api_url = api_url.rstrip("/")
        self._client = client

    async def __call__(self, params: dict[str, Any]) -> SignedCredential:
        try:
            r = await self._client.post(f"{self.api_url}/media/sign", json={"paramsToSign": params})
        except httpx.TransportError as e:
            raise UploadError(f"Could not prepare upload (signature): {e}") from e
        if not r.is_success:
            raise UploadError(f"Could not prepare upload (signature): HTTP {r.status_code}")
        try:
            data = r.json()
            return SignedCredential(signature=data["signature"], api_key=data["apiKey"], cloud_name=data["cloudName"])
        except (ValueError, KeyError, TypeError) as e:
            raise UploadError("Could not prepare upload (signature): malformed response") from e


def _open_file(file, filename: str | None):
    if isinstance(file, (bytes, bytearray)):
        return io.BytesIO(bytes(file)), filename or "upload"
    if isinstance(file, (str, Path)):
        path = Path(file)
        return io.BytesIO(path.read_bytes()), filename or path.name
    return file, filename or getattr(file, "name", None) or "upload"


def _store_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return "Upload failed"
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    if isinstance(err, str) and err:
        return err
    return "Upload failed"


def _with_progress(request: httpx.Request, on_progress: ProgressCallback | None) -> httpx.Request:
    """Re-wrap the encoded multipart body so each chunk handed to the transport reports progress."""
    if on_progress is None:
        return request
    total = int(request.headers.get("content-length") or 0)
    encoded = request.stream

    async def body():
        sent = 0
        last = None
        async for chunk in encoded:
            sent += len(chunk)
            percent = min(100, sent * 100 // total) if total else 0
            if percent != last:
                on_progress(percent)
                last = percent
            yield chunk
        if last != 100:
            on_progress(100)

    # Content-Length is copied over, so httpx will not switch to chunked encoding
    return httpx.Request(request.method, request.url, headers=request.headers, content=body())


class SignedUploader:
    def __init__(self, signer: Signer, client: httpx.AsyncClient,
                 api_base: str = "https://api.cloudinary.com/v1_1",
                 clock: Callable[[], int] = unix_timestamp):
        self._signer = signer
        self._client = client
        self.api_base = api_base
        self._clock = clock

    async def upload(self, file, resource_type: str = "image", *, filename: str | None = None,
                     tags: str | list[str] | None = None, context: dict | None = None,
                     on_progress: ProgressCallback | None = None) -> MediaAsset:
        if resource_type not in RESOURCE_TYPES:
            raise ValueError(f"resource_type must be one of {RESOURCE_TYPES}")
        fileobj, name = _open_file(file, filename)

        params: dict[str, Any] = {"timestamp": self._clock()}
        if tags:
            params["tags"] = tags if isinstance(tags, str) else ",".join(tags)
        if context:
            params["context"] = encode_context(context)
        credential = await self._signer(params)

        fields = {key: str(value) for key, value in params.items()}
        fields["api_key"] = credential.api_key
        fields["signature"] = credential.signature
        url = upload_endpoint(self.api_base, credential.cloud_name, resource_type)
        logger.info("upload: %s %s -> %s", resource_type, name, url)

        request = self._client.build_request("POST", url, data=fields, files={"file": (name, fileobj)})
        try:
            response = await self._client.send(_with_progress(request, on_progress))
        except httpx.TransportError as e:
            raise UploadError(f"Network error during upload: {e}") from e
        if not response.is_success:
            message = _store_error_message(response)
            logger.warning("upload: rejected HTTP %s: %s", response.status_code, message)
            raise UploadError(message)

        try:
            data = response.json()
            public_id, secure_url = data["public_id"], data["secure_url"]
        except (ValueError, KeyError, TypeError) as e:
            raise UploadError("Upload succeeded but the store response was malformed") from e
        return MediaAsset(
            public_id=public_id,
            secure_url=secure_url,
            resource_type=data.get("resource_type") or resource_type,
            created_at=data.get("created_at"),
            context={str(k): str(v) for k, v in (context or {}).items()},
            duration_seconds=data.get("duration") if resource_type == "video" else None,
        )
