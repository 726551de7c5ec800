#!/usr/bin/env python3
"""
Delete leftover temporary AI-tool uploads (tags starting with "temp_") from Cloudinary.
Normally each tool deletes its own temporary upload; this catches ones left behind by a
crash or a failed cleanup.

Run from services/api (dry run unless --confirm):
  uv run python scripts/purge_temp_assets.py
  uv run python scripts/purge_temp_assets.py --confirm
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
from ourspace.services.cleanup import cleanup_temp_asset

TEMP_TAG_PREFIX = "temp_"


async def find_temp_assets(api: ApiClient, resource_type: str) -> list[str]:
    found = []
    cursor = None
    while True:
        page = await api.list_resources(resource_type, cursor)
        for resource in page.get("resources", []):
            if any(str(t).startswith(TEMP_TAG_PREFIX) for t in resource.get("tags") or []):
                found.append(resource["public_id"])
        cursor = page.get("next_cursor")
        if not cursor:
            return found


async def run(confirm: bool, api_url: str) -> int:
    total = 0
    async with httpx.AsyncClient(timeout=60.0) as client:
        api = ApiClient(api_url, client)
        for resource_type in ("image", "video"):
            ids = await find_temp_assets(api, resource_type)
            print(f"  {resource_type}: {len(ids)} temporary asset(s)")
            for public_id in ids:
                if not confirm:
                    print(f"    would delete {public_id}")
                    continue
                if await cleanup_temp_asset(api, public_id, resource_type):
                    total += 1
                    print(f"    deleted {public_id}")
                else:
                    print(f"    could not delete {public_id}", file=sys.stderr)
    if confirm:
        print(f"Deleted {total} asset(s).")
    else:
        print("Dry run. Pass --confirm to delete.")
    return 0


def main():
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--confirm", action="store_true")
    parser.add_argument("--api-url", default=settings.ourspace_api_url)
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args.confirm, args.api_url)))


if __name__ == "__main__":
    main()
