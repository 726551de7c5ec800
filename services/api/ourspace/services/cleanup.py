"""Best-effort deletion of temporary assets that were only uploaded as input for an AI tool."""
import logging
from contextlib import asynccontextmanager
from typing import Protocol

logger = logging.getLogger(__name__)

# "not found" means someone already removed it; nothing left to clean
DONE_RESULTS = ("ok", "not found")


class AssetDeleter(Protocol):
    async def destroy(self, public_id: str, resource_type: str = "image") -> dict:
        ...


async def cleanup_temp_asset(deleter: AssetDeleter, public_id: str, resource_type: str = "image") -> bool:
    """Delete a temporary asset. Never raises; returns True once the asset is gone."""
    if not public_id:
        return False
    try:
        data = await deleter.destroy(public_id, resource_type)
    except Exception as e:
        logger.warning("cleanup: failed to delete %s/%s: %s", resource_type, public_id, e)
        return False
    result = data.get("result") if isinstance(data, dict) else None
    if result in DONE_RESULTS:
        logger.info("cleanup: temporary asset deleted %s/%s (%s)", resource_type, public_id, result)
        return True
    logger.warning("cleanup: unexpected destroy result for %s/%s: %s", resource_type, public_id, data)
    return False


@asynccontextmanager
async def temporary_asset(uploader, deleter: AssetDeleter, file, resource_type: str = "image", **upload_kwargs):
    """Upload file, yield the MediaAsset, and delete it afterwards whether the body succeeded or not."""
    asset = await uploader.upload(file, resource_type, **upload_kwargs)
    try:
        yield asset
    finally:
        await cleanup_temp_asset(deleter, asset.public_id, asset.resource_type)
