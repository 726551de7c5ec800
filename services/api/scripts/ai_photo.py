#!/usr/bin/env python3
"""
Run the AI photo generator end to end: upload the source photo as a temporary asset,
ask the API to run every model on it, print each model's result, then delete the
temporary asset whatever happened.

Run from services/api:
  uv run python scripts/ai_photo.py me.jpg "make it a watercolor painting"
  uv run python scripts/ai_photo.py me.jpg --upscale 4
"""
import argparse
import asyncio
import os
import sys

import httpx
from dotenv import load_dotenv

_repo_root = os.path.abspath(os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "..", ".."))
load_dotenv(os.path.join(_repo_root, ".env"))

from ourspace.core.config import settings
from ourspace.services.api_client import ApiClient
from ourspace.services.cleanup import temporary_asset
from ourspace.services.uploader import UploadError


def _print_result(result: dict) -> bool:
    model = result.get("model")
    if result.get("status") == "ok":
        print(f"  {model}: {result['url'][:200]}")
        return True
    print(f"  {model}: FAILED {result.get('error')}")
    return False


async def run(args) -> int:
    succeeded = 0
    async with httpx.AsyncClient(timeout=None) as client:
        api = ApiClient(args.api_url, client)
        tag = "temp_upscale" if args.upscale else "temp_ai_photo"
        try:
            async with temporary_asset(api.uploader(settings.cloudinary_api_base), api, args.file, "image", tags=tag) as asset:
                print(f"  temporary upload: {asset.public_id}")
                if args.upscale:
                    result = await api.upscale(asset.secure_url, args.upscale)
                    print(f"  upscaled: {result.get('url', '')[:200]}")
                    return 0
                # Printed as each model finishes
                async for result in api.ai_photo(asset.secure_url, args.prompt):
                    if _print_result(result):
                        succeeded += 1
        except UploadError as e:
            print(f"Upload failed: {e}", file=sys.stderr)
            return 1
        except httpx.HTTPStatusError as e:
            print(f"API error: HTTP {e.response.status_code} {e.response.text[:300]}", file=sys.stderr)
            return 1
    return 0 if succeeded else 1


def main():
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("file")
    parser.add_argument("prompt", nargs="?", default="")
    parser.add_argument("--upscale", type=int, choices=(2, 4, 8, 16), default=None)
    parser.add_argument("--api-url", default=settings.ourspace_api_url)
    args = parser.parse_args()
    if not args.upscale and not args.prompt:
        parser.error("prompt is required unless --upscale is given")
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
