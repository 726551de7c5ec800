"""
Map Cloudinary resource listings into gallery items: caption/date from context metadata,
cropped thumbnail URLs, and M:SS duration labels for videos.
"""
import logging
import math
import re
from datetime import datetime

from ourspace.schemas.media import NormalizedGalleryItem

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Tanpa Judul"
DEFAULT_GRAVITY = "center"
DEFAULT_OFFSET = "0"
UPLOAD_MARKER = "/upload/"

IMAGE_TRANSFORM = "g_{gravity},w_300,h_300,c_fill,q_auto,f_auto"
VIDEO_TRANSFORM = "so_{offset},g_{gravity},w_500,h_280,c_fill,q_auto,f_auto"

_EXTENSION_RE = re.compile(r"\.[^./]+$")


def custom_context(resource: dict) -> dict:
    """Return context.custom, or {} when either level is missing or not a mapping."""
    context = resource.get("context")
    if not isinstance(context, dict):
        return {}
    custom = context.get("custom")
    return custom if isinstance(custom, dict) else {}


def insert_transformation(url: str, transformation: str) -> str:
    # Only the first /upload/ marker is rewritten
    return url.replace(UPLOAD_MARKER, f"{UPLOAD_MARKER}{transformation}/", 1)


def build_thumbnail_url(url: str, resource_type: str, gravity: str = DEFAULT_GRAVITY,
                        offset: str = DEFAULT_OFFSET) -> str:
    if resource_type == "video":
        jpg_url = _EXTENSION_RE.sub(".jpg", url)
        return insert_transformation(jpg_url, VIDEO_TRANSFORM.format(offset=offset, gravity=gravity))
    return insert_transformation(url, IMAGE_TRANSFORM.format(gravity=gravity))


def _to_seconds(value) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(seconds) or seconds < 0:
        return 0.0
    return seconds


def format_duration(seconds) -> str:
    """M:SS with unpadded minutes. Remainder rounds half up; 60 carries into minutes."""
    total = _to_seconds(seconds)
    minutes = int(total // 60)
    rest = int(math.floor(total % 60 + 0.5))
    if rest == 60:
        minutes, rest = minutes + 1, 0
    return f"{minutes}:{rest:02d}"


def format_created_at(created_at: str | None) -> str:
    """Render the store's ISO timestamp as a d/m/yyyy date."""
    if not created_at:
        return ""
    try:
        dt = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    except ValueError:
        return created_at
    return f"{dt.day}/{dt.month}/{dt.year}"


def normalize_resource(resource: dict, resource_type: str | None = None) -> NormalizedGalleryItem:
    custom = custom_context(resource)
    rtype = resource_type or resource.get("resource_type") or "image"
    url = resource.get("secure_url") or resource.get("url") or ""
    gravity = custom.get("cover_gravity") or DEFAULT_GRAVITY
    offset = str(custom.get("cover_offset") or DEFAULT_OFFSET)

    duration = None
    if rtype == "video":
        raw = custom.get("duration")
        if raw in (None, ""):
            raw = resource.get("duration")
        duration = format_duration(raw)

    return NormalizedGalleryItem(
        public_id=resource.get("public_id") or "",
        resource_type=rtype,
        title=custom.get("caption") or DEFAULT_TITLE,
        date=custom.get("date") or format_created_at(resource.get("created_at")),
        thumbnail_url=build_thumbnail_url(url, rtype, gravity=gravity, offset=offset),
        original_url=url,
        cover_gravity=gravity,
        cover_offset=offset,
        duration=duration,
        tags=list(resource.get("tags") or []),
    )


def normalize_listing(listing, resource_type: str | None = None) -> list[NormalizedGalleryItem]:
    """Accepts the raw listing payload, a resources list, or a single resource dict."""
    if isinstance(listing, dict):
        resources = listing.get("resources", [listing] if "public_id" in listing else [])
    else:
        resources = listing or []
    if isinstance(resources, dict):
        resources = [resources]
    return [normalize_resource(r, resource_type) for r in resources if isinstance(r, dict)]
