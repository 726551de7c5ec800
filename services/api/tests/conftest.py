import httpx
import pytest


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def sequence_handler(responses):
    """Serve responses in order and record every request."""
    queue = list(responses)
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    handler.requests = seen
    return handler


@pytest.fixture
def sleeps():
    """Fake asyncio.sleep that records requested delays (seconds)."""
    recorded = []

    async def sleep(seconds):
        recorded.append(seconds)

    sleep.calls = recorded
    return sleep
