import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from inkwell.core.metrics import metrics


class FakeBackend:
    """
    In-process stand-in for an inference server.

    Streams the given fragments verbatim; when ``hold`` is set the stream
    stays open after them until ``release`` fires (abort call or teardown).
    ``stall_tokenize`` and ``stall_headers`` make /tokenize or the stream
    wait for ``release`` before answering at all.
    """

    def __init__(
        self,
        fragments: Sequence[str] = (),
        messages: Sequence[Any] = (),
        tokens: Sequence[int] = (1, 2, 3),
        status: int = 200,
        tokenize_status: int = 200,
        hold: bool = False,
        stall_tokenize: bool = False,
        stall_headers: bool = False,
        tokenize_reply: Any = None,
    ):
        self.fragments = list(fragments)
        self.messages = list(messages)
        self.tokens = list(tokens)
        self.status = status
        self.tokenize_status = tokenize_status
        self.hold = hold
        self.stall_tokenize = stall_tokenize
        self.stall_headers = stall_headers
        self.tokenize_reply = tokenize_reply
        self.release = asyncio.Event()
        self.requests: List[Dict[str, Any]] = []

        self.app = web.Application()
        self.app.router.add_post("/tokenize", self.tokenize)
        self.app.router.add_post("/completion", self.stream)
        self.app.router.add_post("/api/extra/generate/stream", self.stream)
        self.app.router.add_post("/api/extra/abort", self.abort)
        self.app.router.add_get("/api/v1/stream", self.websocket)

    def paths(self) -> List[str]:
        return [r["path"] for r in self.requests]

    def _record(self, request: web.Request, body: Any) -> None:
        self.requests.append({"path": request.path, "body": body, "time": time.monotonic()})

    async def tokenize(self, request: web.Request) -> web.StreamResponse:
        self._record(request, await request.json())
        if self.stall_tokenize:
            await self.release.wait()
        if self.tokenize_status != 200:
            return web.Response(status=self.tokenize_status, text="tokenizer unavailable")
        if self.tokenize_reply is not None:
            return web.json_response(self.tokenize_reply)
        return web.json_response({"tokens": self.tokens})

    async def abort(self, request: web.Request) -> web.StreamResponse:
        self._record(request, await request.json())
        self.release.set()
        return web.json_response({"success": "true"})

    async def stream(self, request: web.Request) -> web.StreamResponse:
        self._record(request, await request.json())
        if self.status != 200:
            return web.Response(status=self.status, text="model not loaded")
        if self.stall_headers:
            await self.release.wait()

        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        try:
            await response.prepare(request)
            for fragment in self.fragments:
                await response.write(fragment.encode())
                await asyncio.sleep(0)
            if self.hold:
                await self.release.wait()
                return response
            await response.write_eof()
        except ConnectionResetError:
            pass
        return response

    async def websocket(self, request: web.Request) -> web.StreamResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._record(request, await ws.receive_json())
        for message in self.messages:
            await ws.send_str(message if isinstance(message, str) else json.dumps(message))
        if self.hold:
            # Keep the socket open until the client closes it
            async for _ in ws:
                pass
        await ws.close()
        return ws


@pytest_asyncio.fixture
async def serve():
    """Start a FakeBackend and return its base URL."""
    started: List[tuple] = []

    async def _serve(backend: FakeBackend) -> str:
        server = TestServer(backend.app)
        await server.start_server()
        started.append((backend, server))
        return str(server.make_url("/"))

    yield _serve

    for backend, server in started:
        backend.release.set()
        await server.close()


@pytest.fixture(autouse=True)
def clean_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def caplog_debug(caplog):
    caplog.set_level(logging.DEBUG)
    return caplog


def sse(*records: Any, event: Optional[str] = None) -> str:
    """Encode records as a text/event-stream body."""
    prefix = f"event: {event}\n" if event else ""
    return "".join(f"{prefix}data: {json.dumps(r)}\n\n" for r in records)
