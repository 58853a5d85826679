import asyncio
from io import BytesIO

import httpx
import pytest
from PIL import Image

from lens_ocr import Lens


@pytest.fixture
def make_image():
    def _make(size=(200, 100), fmt="PNG", color=(255, 255, 255)):
        out = BytesIO()
        Image.new("RGB", size, color).save(out, format=fmt)
        return out.getvalue()
    return _make


class Recorder:
    """Stub transport: records every request, answers with ``handler``."""

    def __init__(self, handler):
        self.handler = handler
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def lens_requests(self):
        return [r for r in self.requests if r.url.host == "lens.google.com"]

    def consent_requests(self):
        return [r for r in self.requests if r.url.host == "consent.google.com"]


@pytest.fixture
def lens_factory():
    clients = []

    def _make(handler, config=None, cls=Lens):
        rec = Recorder(handler)
        client = httpx.AsyncClient(transport=httpx.MockTransport(rec))
        clients.append(client)
        opts = {"consent_delay": 0}
        opts.update(config or {})
        return cls(opts, client=client), rec

    yield _make

    for client in clients:
        asyncio.run(client.aclose())
