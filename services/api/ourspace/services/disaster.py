"""Earthquake info from BMKG, nearest-quake lookup and Nominatim reverse geocoding."""
import asyncio
import logging
import math

import httpx

logger = logging.getLogger(__name__)

BMKG_BASE = "https://data.bmkg.go.id/DataMKG/TEWS"
BMKG_FEEDS = {
    "autogempa": f"{BMKG_BASE}/autogempa.json",  # latest significant quake
    "gempaterkini": f"{BMKG_BASE}/gempaterkini.json",  # recent M5+
    "gempadirasakan": f"{BMKG_BASE}/gempadirasakan.json",  # felt quakes
}
NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
GEOCODER_USER_AGENT = "OurSpaceDisasterDetector/1.0"
EARTH_RADIUS_KM = 6371


class BmkgUnavailable(Exception):
    pass


def _as_list(gempa) -> list:
    if gempa is None:
        return []
    return gempa if isinstance(gempa, list) else [gempa]


def _gempa(payload) -> object:
    info = payload.get("Infogempa") if isinstance(payload, dict) else None
    return info.get("gempa") if isinstance(info, dict) else None


async def _get_json(client: httpx.AsyncClient, url: str):
    r = await client.get(url, headers={"User-Agent": USER_AGENT, "Cache-Control": "no-store"})
    r.raise_for_status()
    return r.json()


async def fetch_quakes(client: httpx.AsyncClient) -> dict:
    """All three feeds, fetched concurrently. Only autogempa is required."""
    auto, terkini, dirasakan = await asyncio.gather(
        *(_get_json(client, url) for url in BMKG_FEEDS.values()),
        return_exceptions=True,
    )
    if isinstance(auto, Exception):
        raise BmkgUnavailable("Failed to fetch AutoGempa") from auto
    for name, result in (("gempaterkini", terkini), ("gempadirasakan", dirasakan)):
        if isinstance(result, Exception):
            logger.warning("disaster: %s unavailable: %s", name, result)
    return {
        "autogempa": _gempa(auto),
        "gempaterkini": [] if isinstance(terkini, Exception) else _as_list(_gempa(terkini)),
        "gempadirasakan": [] if isinstance(dirasakan, Exception) else _as_list(_gempa(dirasakan)),
    }


def shakemap_url(filename: str | None) -> str | None:
    return f"{BMKG_BASE}/{filename}" if filename else None


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> int:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return int(math.floor(EARTH_RADIUS_KM * c + 0.5))


def parse_coordinates(value: str) -> tuple[float, float] | None:
    """BMKG "Coordinates" is "lat,lon"."""
    try:
        lat, lon = (float(p) for p in (value or "").split(","))
    except ValueError:
        return None
    return lat, lon


def nearest_quake(quakes: dict, lat: float, lon: float) -> dict | None:
    candidates = _as_list(quakes.get("autogempa")) + quakes.get("gempaterkini", []) + quakes.get("gempadirasakan", [])
    best = None
    for quake in candidates:
        coords = parse_coordinates(quake.get("Coordinates", "")) if isinstance(quake, dict) else None
        if coords is None:
            continue
        distance = haversine_km(lat, lon, *coords)
        if best is None or distance < best["distance"]:
            best = {**quake, "distance": distance}
    return best


def _coords_label(lat: float, lon: float) -> str:
    return f"{lat:.4f}, {lon:.4f}"


async def reverse_geocode(client: httpx.AsyncClient, lat: float, lon: float) -> str:
    """Short place label for coordinates. Falls back to the coordinates themselves."""
    try:
        r = await client.get(
            NOMINATIM_REVERSE_URL,
            params={"format": "json", "lat": lat, "lon": lon, "zoom": 10, "addressdetails": 1},
            headers={"User-Agent": GEOCODER_USER_AGENT},
        )
        if not r.is_success:
            return _coords_label(lat, lon)
        data = r.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("disaster: Nominatim failed: %s", e)
        return _coords_label(lat, lon)
    if not isinstance(data, dict) or not (data.get("address") or data.get("display_name")):
        return _coords_label(lat, lon)
    parts = data.get("address") or {}
    place = parts.get("village") or parts.get("town") or parts.get("city") or parts.get("county")
    region = parts.get("state") or parts.get("region")
    label = ", ".join(p for p in (place, region) if p)
    if label:
        return label
    display = data.get("display_name") or ""
    return ", ".join(s.strip() for s in display.split(",")[:2]) or _coords_label(lat, lon)
