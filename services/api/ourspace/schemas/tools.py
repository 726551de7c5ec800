from pydantic import BaseModel


class RemoveBgRequest(BaseModel):
    imageUrl: str | None = None


class UpscaleRequest(BaseModel):
    imageUrl: str | None = None
    scale: int = 2


class AiPhotoRequest(BaseModel):
    imageUrl: str | None = None
    prompt: str | None = None


class ModelResult(BaseModel):
    status: str  # "ok" | "error"
    url: str | None = None
    error: str | None = None


class YoutubeRequest(BaseModel):
    url: str | None = None
    type: str = "video"  # "video" | "audio"
    quality: str | None = None
