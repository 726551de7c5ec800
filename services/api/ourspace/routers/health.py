import logging

from fastapi import APIRouter

from ourspace.core.config import settings

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
def health():
    """Liveness plus which integrations have credentials (booleans only)."""
    integrations = {
        "media_store": bool(
            settings.cloudinary_cloud_name and settings.cloudinary_api_key and settings.cloudinary_api_secret
        ),
        "gold_api": bool(settings.gold_api_key),
        "remove_bg": bool(settings.pitucode_api_key),
    }
    logger.info("health: OK %s", integrations)
    return {"status": "ok", "env": settings.app_env, "integrations": integrations}
