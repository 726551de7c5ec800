"""Market monitor: IDX stocks + USD/IDR (Yahoo Finance), world gold (GoldAPI), derived Antam gold price."""
import asyncio
import logging
import math
from datetime import datetime, timezone

import httpx

from ourspace.core.cache import TTLCache

logger = logging.getLogger(__name__)

YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
GOLD_API_URL = "https://www.goldapi.io/api/XAU/USD"
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

STOCK_SYMBOLS = ["^JKSE", "USDIDR=X", "ANTM.JK", "BBCA.JK", "BBRI.JK", "BMRI.JK", "TLKM.JK", "ASII.JK"]

# Shown when Yahoo has no usable quote for a symbol
STOCK_FALLBACKS = {
    "^JKSE": {"price": 7850.55, "change": 12.3, "changePercent": 0.15, "name": "Composite Index"},
    "USDIDR=X": {"price": 15450, "change": -25, "changePercent": -0.16, "name": "USD/IDR"},
    "ANTM.JK": {"price": 1650, "change": 10, "changePercent": 0.6, "name": "Aneka Tambang Tbk."},
    "BBCA.JK": {"price": 10250, "change": 50, "changePercent": 0.49, "name": "Bank Central Asia Tbk."},
    "BBRI.JK": {"price": 5400, "change": -25, "changePercent": -0.46, "name": "Bank Rakyat Indonesia (Persero) Tbk."},
    "BMRI.JK": {"price": 7200, "change": 0, "changePercent": 0, "name": "Bank Mandiri (Persero) Tbk."},
    "TLKM.JK": {"price": 2980, "change": 20, "changePercent": 0.67, "name": "Telkom Indonesia (Persero) Tbk."},
    "ASII.JK": {"price": 5125, "change": -50, "changePercent": -0.97, "name": "Astra International Tbk."},
}

GOLD_FALLBACK = {
    "price": 2750.40,
    "symbol": "XAU",
    "currency": "USD",
    "change": 12.5,
    "changePercent": 0.45,
    "isMock": True,
}

# Antam / UBS retail prices (IDR per gram) the live XAU move is applied to
ANTAM_ANCHOR = 3005000
UBS_ANCHOR = 2566000
BUYBACK_RATIO = 0.93


def fallback_quote(symbol: str) -> dict:
    return {"symbol": symbol, **STOCK_FALLBACKS.get(symbol, {})}


def parse_chart_quote(symbol: str, payload: dict) -> dict | None:
    """Quote dict from a Yahoo chart response, or None if it carries no market price."""
    results = ((payload or {}).get("chart") or {}).get("result") or []
    if not results:
        return None
    meta = results[0].get("meta") or {}
    price = meta.get("regularMarketPrice")
    if not price:
        return None
    prev_close = meta.get("chartPreviousClose") or meta.get("previousClose")
    change = price - prev_close if prev_close else None
    change_percent = change / prev_close * 100 if prev_close else None
    return {
        "symbol": meta.get("symbol") or symbol,
        "price": price,
        "change": change,
        "changePercent": change_percent,
        "prevClose": prev_close,
        "name": meta.get("shortName") or meta.get("longName") or STOCK_FALLBACKS.get(symbol, {}).get("name"),
    }


async def fetch_quote(client: httpx.AsyncClient, symbol: str) -> dict | None:
    r = await client.get(
        YAHOO_CHART_URL.format(symbol=symbol),
        params={"range": "1d", "interval": "1d"},
        headers={"User-Agent": USER_AGENT},
    )
    r.raise_for_status()
    return parse_chart_quote(symbol, r.json())


async def fetch_stocks(client: httpx.AsyncClient, symbols: list[str] = STOCK_SYMBOLS) -> dict:
    results = await asyncio.gather(*(fetch_quote(client, s) for s in symbols), return_exceptions=True)
    out = {}
    for symbol, result in zip(symbols, results):
        if isinstance(result, Exception):
            logger.warning("investment: quote %s failed: %s", symbol, result)
            result = None
        out[symbol] = result or fallback_quote(symbol)
    return out


async def fetch_gold_world(client: httpx.AsyncClient, api_key: str, cache: TTLCache) -> dict:
    """XAU/USD from GoldAPI, served from cache while fresh. The mock fallback is never cached."""
    cached = cache.get()
    if cached is not None:
        return cached
    if api_key:
        try:
            r = await client.get(GOLD_API_URL, headers={"x-access-token": api_key})
            if r.is_success:
                data = r.json()
                result = {
                    "price": data.get("price"),
                    "symbol": data.get("symbol"),
                    "currency": data.get("currency"),
                    "change": data.get("ch"),
                    "changePercent": data.get("chp"),
                    "isMock": False,
                }
                cache.set(result)
                return result
            logger.warning("investment: GoldAPI HTTP %s", r.status_code)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("investment: GoldAPI failed: %s", e)
    return dict(GOLD_FALLBACK)


def compute_antam(xau_change_percent: float | None) -> dict:
    factor = 1 + (xau_change_percent or 0) / 100
    price = math.floor(ANTAM_ANCHOR * factor)
    return {
        "price": price,
        "buyback": math.floor(price * BUYBACK_RATIO),
        "ubs": math.floor(UBS_ANCHOR * factor),
        "source": "Live Market Calc (XAU Based)",
    }


async def market_snapshot(client: httpx.AsyncClient, gold_api_key: str, cache: TTLCache) -> dict:
    stocks, gold_world = await asyncio.gather(
        fetch_stocks(client),
        fetch_gold_world(client, gold_api_key, cache),
    )
    return {
        "stocks": stocks,
        "gold": {"world": gold_world, "antam": compute_antam(gold_world.get("changePercent"))},
        "lastUpdate": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
