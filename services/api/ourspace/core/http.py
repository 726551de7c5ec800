"""Request-scoped dependencies for outbound HTTP: shared client, Cloudinary client, retry executor."""
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends

from ourspace.core.config import settings
from ourspace.core.cloudinary import CloudinaryClient
from ourspace.services.retry import RetryExecutor


def _new_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.http_timeout_seconds, follow_redirects=True)


def _retry_executor(client: httpx.AsyncClient) -> RetryExecutor:
    return RetryExecutor(
        client,
        max_attempts=settings.ai_max_attempts,
        initial_delay_ms=settings.ai_retry_initial_delay_ms,
    )


async def get_http_client():
    async with _new_client() as client:
        yield client


def get_cloudinary(client: httpx.AsyncClient = Depends(get_http_client)) -> CloudinaryClient:
    return CloudinaryClient(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
        client=client,
        api_base=settings.cloudinary_api_base,
    )


def get_retry_executor(client: httpx.AsyncClient = Depends(get_http_client)) -> RetryExecutor:
    return _retry_executor(client)


@asynccontextmanager
async def open_streaming_executor():
    # Owns its client so it outlives the request scope of a streamed response
    async with _new_client() as client:
        yield _retry_executor(client)


def get_streaming_executor():
    """Factory for an executor used inside a StreamingResponse body."""
    return open_streaming_executor
