import json
import logging

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from ourspace.core.cache import TTLCache, get_gold_cache
from ourspace.core.config import settings
from ourspace.core.http import get_http_client, get_retry_executor, get_streaming_executor
from ourspace.schemas.tools import AiPhotoRequest, RemoveBgRequest, UpscaleRequest, YoutubeRequest
from ourspace.services import ai_media, disaster, investment, youtube
from ourspace.services.retry import ExternalCallError, RetryExecutor, truncate_message

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tools", tags=["tools"])

PNG_ATTACHMENT_HEADERS = {"Content-Disposition": 'attachment; filename="removed-bg.png"'}


@router.post("/remove-bg")
async def remove_bg(request: Request, client: httpx.AsyncClient = Depends(get_http_client)):
    """Accepts JSON {imageUrl} or a multipart form with an "image" file."""
    content_type = request.headers.get("content-type", "")
    try:
        if "multipart/form-data" in content_type:
            form = await request.form()
            upload = form.get("image")
            if upload is None or isinstance(upload, str):
                return JSONResponse({"error": "No image file provided"}, status_code=400)
            logger.info("tools/remove-bg: file %s", upload.filename)
            image = await ai_media.remove_background(
                client,
                api_key=settings.pitucode_api_key,
                username=settings.pitucode_username,
                image_bytes=await upload.read(),
                filename=upload.filename or "image.jpg",
            )
        else:
            try:
                body = RemoveBgRequest(**(await request.json()))
            except (ValueError, TypeError):
                body = RemoveBgRequest()
            if not body.imageUrl:
                return JSONResponse({"error": "Image URL is required"}, status_code=400)
            logger.info("tools/remove-bg: url %s", body.imageUrl[:80])
            image = await ai_media.remove_background(
                client,
                api_key=settings.pitucode_api_key,
                username=settings.pitucode_username,
                image_url=body.imageUrl,
            )
    except ai_media.ProviderError as e:
        logger.warning("tools/remove-bg: %s", e)
        return JSONResponse({"error": str(e)}, status_code=e.status_code)
    except Exception as e:
        logger.exception("tools/remove-bg: error %s", e)
        return JSONResponse({"error": truncate_message(str(e)) or "Something went wrong"}, status_code=500)
    return Response(content=image, media_type="image/png", headers=PNG_ATTACHMENT_HEADERS)


@router.post("/upscale")
async def upscale(body: UpscaleRequest, executor: RetryExecutor = Depends(get_retry_executor)):
    if not body.imageUrl:
        return JSONResponse({"error": "Image URL is required"}, status_code=400)
    try:
        url = await ai_media.upscale_image(executor, settings.nekolabs_base_url, body.imageUrl, body.scale)
    except ExternalCallError as e:
        return JSONResponse({"error": truncate_message(str(e))}, status_code=502)
    except Exception as e:
        logger.exception("tools/upscale: error %s", e)
        return JSONResponse({"error": "Failed to process image"}, status_code=500)
    return {"url": url}


@router.post("/ai-photo")
async def ai_photo(body: AiPhotoRequest, open_executor=Depends(get_streaming_executor)):
    """Runs every model concurrently and streams one NDJSON line per model as soon as it settles."""
    if not body.imageUrl or not body.prompt:
        return JSONResponse({"error": "imageUrl and prompt are required"}, status_code=400)
    models = ai_media.photo_models(settings.nekolabs_base_url, settings.ryzumi_base_url)

    async def results():
        ok = 0
        async with open_executor() as executor:
            async for key, result in ai_media.iter_photo_results(executor, body.imageUrl, body.prompt, models):
                if result.status == "ok":
                    ok += 1
                yield json.dumps({"model": key, **result.model_dump(exclude_none=True)}) + "\n"
        logger.info("tools/ai-photo: %d/%d models succeeded", ok, len(models))

    return StreamingResponse(results(), media_type="application/x-ndjson")


@router.post("/youtube-downloader")
async def youtube_downloader(body: YoutubeRequest, client: httpx.AsyncClient = Depends(get_http_client)):
    if not body.url:
        return JSONResponse({"error": "URL is required"}, status_code=400)
    logger.info("tools/youtube-downloader: %s type=%s quality=%s", body.url, body.type, body.quality)
    try:
        return await youtube.resolve_download(
            client,
            body.url,
            media_type=body.type,
            quality=body.quality,
            cobalt_instances=settings.cobalt_instance_list(),
            ryzumi_base=settings.ryzumi_base_url,
        )
    except youtube.DownloadUnavailable as e:
        return JSONResponse({"error": str(e), "details": e.details}, status_code=502)
    except Exception as e:
        logger.exception("tools/youtube-downloader: error %s", e)
        return JSONResponse({"error": truncate_message(str(e)) or "Internal Server Error"}, status_code=500)


@router.get("/disaster-detector")
async def disaster_detector(client: httpx.AsyncClient = Depends(get_http_client)):
    logger.info("tools/disaster-detector: fetching BMKG data")
    try:
        return await disaster.fetch_quakes(client)
    except Exception as e:
        logger.error("tools/disaster-detector: %s", e)
        return JSONResponse({"error": str(e) or "Failed to fetch data from BMKG"}, status_code=500)


@router.get("/disaster-detector/nearest")
async def nearest_quake(lat: float, lon: float, client: httpx.AsyncClient = Depends(get_http_client)):
    try:
        quakes = await disaster.fetch_quakes(client)
    except Exception as e:
        logger.error("tools/disaster-detector/nearest: %s", e)
        return JSONResponse({"error": str(e) or "Failed to fetch data from BMKG"}, status_code=500)
    nearest = disaster.nearest_quake(quakes, lat, lon)
    if nearest is None:
        return JSONResponse({"error": "No quake with usable coordinates"}, status_code=404)
    address = await disaster.reverse_geocode(client, lat, lon)
    return {
        "quake": nearest,
        "distance_km": nearest["distance"],
        "address": address,
        "shakemap_url": disaster.shakemap_url(nearest.get("Shakemap")),
    }


@router.get("/investment")
async def market(client: httpx.AsyncClient = Depends(get_http_client), cache: TTLCache = Depends(get_gold_cache)):
    logger.info("tools/investment: request started")
    try:
        return await investment.market_snapshot(client, settings.gold_api_key, cache)
    except Exception as e:
        logger.exception("tools/investment: error %s", e)
        return JSONResponse(
            {"stocks": {}, "gold": {"world": {}, "antam": {}}, "error": "Failed to fetch data"},
            status_code=500,
        )
