#!/usr/bin/env python3
"""
Upload a photo or video straight to Cloudinary using a signature from the OurSpace API.
The API secret never reaches this machine; only the signature for this one upload does.

Run from services/api:
  uv run python scripts/upload_media.py photo.jpg --caption "Pantai Kuta" --date 2024-08-17
  uv run python scripts/upload_media.py clip.mp4 --type video --cover-offset 3.5 --cover-gravity north
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
from ourspace.services.normalizer import build_thumbnail_url
from ourspace.services.uploader import UploadError


def _print_progress(percent: int) -> None:
    print(f"\r  uploading... {percent:3d}%", end="", flush=True)


async def run(args) -> int:
    context = {}
    if args.caption:
        context["caption"] = args.caption
    if args.date:
        context["date"] = args.date
    if args.type == "video":
        context["cover_offset"] = args.cover_offset
        context["cover_gravity"] = args.cover_gravity
        if args.duration is not None:
            context["duration"] = str(args.duration)
    elif args.cover_gravity != "center":
        context["cover_gravity"] = args.cover_gravity

    async with httpx.AsyncClient(timeout=None) as client:
        api = ApiClient(args.api_url, client)
        try:
            asset = await api.uploader(settings.cloudinary_api_base).upload(
                args.file,
                args.type,
                tags=args.tags,
                context=context,
                on_progress=_print_progress,
            )
        except UploadError as e:
            print(f"\nUpload failed: {e}", file=sys.stderr)
            return 1
    print()
    print(f"  public_id: {asset.public_id}")
    print(f"  url:       {asset.secure_url}")
    print(f"  thumbnail: {build_thumbnail_url(asset.secure_url, asset.resource_type, args.cover_gravity, args.cover_offset)}")
    return 0


def main():
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("file")
    parser.add_argument("--type", choices=("image", "video"), default="image")
    parser.add_argument("--caption")
    parser.add_argument("--date")
    parser.add_argument("--tags", default=None, help="comma separated; defaults to gallery/video")
    parser.add_argument("--cover-offset", default="0", help="video cover frame, seconds")
    parser.add_argument("--cover-gravity", default="center")
    parser.add_argument("--duration", type=float, default=None, help="video length in seconds")
    parser.add_argument("--api-url", default=settings.ourspace_api_url)
    args = parser.parse_args()
    if args.tags is None:
        args.tags = "gallery" if args.type == "image" else "video"
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
