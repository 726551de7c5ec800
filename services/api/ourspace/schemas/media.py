from typing import Any

from pydantic import BaseModel


class SignRequest(BaseModel):
    paramsToSign: dict[str, Any] | None = None


class SignResponse(BaseModel):
    signature: str
    apiKey: str
    cloudName: str


class DeleteRequest(BaseModel):
    public_id: str | None = None
    resource_type: str | None = None  # "image" | "video"


class MediaAsset(BaseModel):
    public_id: str
    secure_url: str
    resource_type: str = "image"
    created_at: str | None = None
    context: dict[str, str] = {}
    duration_seconds: float | None = None  # video only


class NormalizedGalleryItem(BaseModel):
    public_id: str
    resource_type: str
    title: str
    date: str
    thumbnail_url: str
    original_url: str
    cover_gravity: str = "center"
    cover_offset: str = "0"
    duration: str | None = None  # "M:SS", video only
    tags: list[str] = []


class GalleryResponse(BaseModel):
    items: list[NormalizedGalleryItem]
    next_cursor: str | None = None
