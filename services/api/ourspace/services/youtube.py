"""YouTube download links: public Cobalt instances in order, then the Ryzumi downloader."""
import logging

import httpx

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://www.youtube.com/",
    "Origin": "https://www.youtube.com",
}


class DownloadUnavailable(Exception):
    """Every provider failed. details holds the last Cobalt error."""

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.details = details


def cobalt_payload(url: str, media_type: str, quality: str | None) -> dict:
    v_quality = quality.replace("p", "") if quality and quality != "Highest" else "1080"
    return {
        "url": url,
        "vCodec": "h264",
        "vQuality": v_quality,
        "aFormat": "mp3",
        "isAudioOnly": media_type == "audio",
    }


async def _try_cobalt(client: httpx.AsyncClient, instance: str, payload: dict) -> dict | None:
    r = await client.post(
        f"{instance}/api/json",
        json=payload,
        headers={
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": BROWSER_HEADERS["User-Agent"],
        },
    )
    if not r.is_success:
        raise httpx.HTTPStatusError(f"Status {r.status_code}", request=r.request, response=r)
    data = r.json()
    if not isinstance(data, dict):
        raise ValueError(f"unexpected JSON {type(data).__name__}")
    if data.get("url") or data.get("stream"):
        return {
            "url": data.get("url") or data.get("stream"),
            "title": data.get("filename") or "YouTube Video",
            "thumbnail": "",
            "size": "Unknown",
        }
    return None


async def resolve_download(client: httpx.AsyncClient, url: str, media_type: str = "video",
                           quality: str | None = None, cobalt_instances: list[str] = (),
                           ryzumi_base: str = "https://api.ryzumi.vip") -> dict:
    payload = cobalt_payload(url, media_type, quality)
    last_error = None
    for instance in cobalt_instances:
        logger.info("youtube: trying Cobalt instance %s", instance)
        try:
            result = await _try_cobalt(client, instance, payload)
        except httpx.HTTPStatusError as e:
            logger.warning("youtube: %s failed: %s", instance, e)
            last_error = str(e)
            continue
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("youtube: %s error: %s", instance, e)
            last_error = str(e) or type(e).__name__
            continue
        if result:
            logger.info("youtube: success via %s", instance)
            return result

    logger.info("youtube: all Cobalt instances failed, trying Ryzumi")
    endpoint = "ytmp3" if media_type == "audio" else "ytmp4"
    params = {"url": url}
    if quality:
        params["quality"] = quality
    try:
        r = await client.get(f"{ryzumi_base.rstrip('/')}/api/downloader/{endpoint}", params=params, headers=BROWSER_HEADERS)
        data = r.json() if r.is_success else None
        if isinstance(data, dict):
            return data
        logger.warning("youtube: Ryzumi unusable answer, HTTP %s", r.status_code)
    except (httpx.HTTPError, ValueError) as e:
        logger.error("youtube: Ryzumi fallback failed too: %s", e)
    raise DownloadUnavailable("All download providers failed. Please try again later.", details=last_error)
