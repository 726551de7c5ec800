import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ourspace.core.cloudinary import RESOURCE_TYPES, CloudinaryClient, CloudinaryError
from ourspace.core.http import get_cloudinary
from ourspace.core.signing import SignatureError
from ourspace.schemas.media import DeleteRequest, GalleryResponse, SignRequest, SignResponse
from ourspace.services.normalizer import normalize_listing

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/media", tags=["media"])


def _not_configured(cloudinary: CloudinaryClient) -> JSONResponse | None:
    if cloudinary.configured:
        return None
    logger.error("media: Cloudinary credentials are not configured")
    return JSONResponse({"error": "Media storage is not configured"}, status_code=500)


@router.post("/sign", response_model=SignResponse)
def sign_upload(body: SignRequest, cloudinary: CloudinaryClient = Depends(get_cloudinary)):
    """Sign the exact parameter set the client is about to submit to Cloudinary."""
    if not body.paramsToSign:
        return JSONResponse({"error": "Missing paramsToSign"}, status_code=400)
    resp = _not_configured(cloudinary)
    if resp is not None:
        return resp
    logger.info("media/sign: keys=%s", sorted(body.paramsToSign))
    try:
        signature = cloudinary.sign(body.paramsToSign)
    except SignatureError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except Exception as e:
        logger.exception("media/sign: error %s", e)
        return JSONResponse({"error": "Internal Server Error"}, status_code=500)
    return SignResponse(signature=signature, apiKey=cloudinary.api_key, cloudName=cloudinary.cloud_name)


@router.post("/delete")
async def delete_asset(body: DeleteRequest, cloudinary: CloudinaryClient = Depends(get_cloudinary)):
    if not body.public_id or not body.resource_type:
        return JSONResponse({"error": "Missing public_id or resource_type"}, status_code=400)
    if body.resource_type not in RESOURCE_TYPES:
        return JSONResponse({"error": f"Unknown resource_type: {body.resource_type}"}, status_code=400)
    resp = _not_configured(cloudinary)
    if resp is not None:
        return resp
    try:
        data = await cloudinary.destroy(body.public_id, body.resource_type)
    except Exception as e:
        logger.exception("media/delete: error %s", e)
        return JSONResponse({"error": "Internal Server Error"}, status_code=500)
    if not isinstance(data, dict) or data.get("result") != "ok":
        logger.warning("media/delete: %s not deleted: %s", body.public_id, data)
        return JSONResponse({"error": data}, status_code=500)
    return {"success": True, "data": data}


async def _list(cloudinary: CloudinaryClient, type: str, next_cursor: str | None):
    if type not in RESOURCE_TYPES:
        return None, JSONResponse({"error": f"Unknown type: {type}"}, status_code=400)
    resp = _not_configured(cloudinary)
    if resp is not None:
        return None, resp
    try:
        return await cloudinary.list_resources(type, next_cursor), None
    except CloudinaryError as e:
        logger.warning("media/resources: %s %s", e, e.payload)
        return None, JSONResponse({"error": e.payload or str(e)}, status_code=500)
    except Exception as e:
        logger.exception("media/resources: error %s", e)
        return None, JSONResponse({"error": "Failed to fetch resources"}, status_code=500)


@router.get("/resources")
async def list_resources(type: str = "image", next_cursor: str | None = None,
                         cloudinary: CloudinaryClient = Depends(get_cloudinary)):
    """Raw Cloudinary listing (50 per page, newest first, with context and tags)."""
    data, error = await _list(cloudinary, type, next_cursor)
    return error if error is not None else data


@router.get("/gallery", response_model=GalleryResponse)
async def gallery(type: str = "image", next_cursor: str | None = None,
                  cloudinary: CloudinaryClient = Depends(get_cloudinary)):
    data, error = await _list(cloudinary, type, next_cursor)
    if error is not None:
        return error
    return GalleryResponse(items=normalize_listing(data, type), next_cursor=data.get("next_cursor"))
