import asyncio
import json
import logging
from typing import AsyncIterator, Optional

import aiohttp

from inkwell.core.cancel import CancelToken
from inkwell.core.exceptions import GenerationCancelled, NetworkError, ProtocolError
from inkwell.interfaces.backend import ABCBackend
from inkwell.llm.bridge import PushPullBridge
from inkwell.llm.http import endpoint_url
from inkwell.llm.options import translate_options
from inkwell.core.types import BackendKind, CompletionRequest, NormalizedChunk, TokenizeResult

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/v1/stream"


class TextGenBackend(ABCBackend):
    """
    Client for text-generation-webui's WebSocket streaming API.

    The server pushes one JSON message per event:
    {"event": "text_stream", "text": ...} while generating and
    {"event": "stream_end"} when done. Closing the socket stops generation.
    """

    kind = BackendKind.TEXTGEN

    def __init__(self, timeout_seconds: Optional[float] = None, queue_size: int = 256):
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.queue_size = queue_size

    async def tokenize(
        self, endpoint: str, text: str, cancel_token: Optional[CancelToken] = None
    ) -> TokenizeResult:
        return TokenizeResult()

    async def stream_completion(
        self, endpoint: str, request: CompletionRequest, cancel_token: Optional[CancelToken] = None
    ) -> AsyncIterator[NormalizedChunk]:
        token = cancel_token or CancelToken()
        if token.cancelled:
            return

        url = endpoint_url(endpoint, STREAM_PATH)
        payload = translate_options(self.kind, request.to_options())
        bridge: PushPullBridge[str] = PushPullBridge(maxsize=self.queue_size)

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                ws = await token.run(session.ws_connect(url))
            except GenerationCancelled:
                logger.debug("WebSocket connection cancelled before it opened")
                return
            except aiohttp.ClientError as e:
                if token.cancelled:
                    return
                raise NetworkError(f"WebSocket connection to {url} failed: {e}") from e

            remove = token.add_callback(bridge.abort)
            pump = asyncio.create_task(self._pump(ws, bridge))
            try:
                await token.run(ws.send_json(payload))
                logger.info("Started receiving text-generation-webui stream")

                async for raw in bridge:
                    try:
                        message = json.loads(raw)
                    except json.JSONDecodeError as e:
                        raise ProtocolError(f"Malformed JSON from text-generation-webui: {raw[:80]!r}") from e

                    event = message.get("event") if isinstance(message, dict) else None
                    if event == "text_stream":
                        text = message.get("text") or ""
                        if text:
                            yield NormalizedChunk(content=text)
                    elif event == "stream_end":
                        logger.info("text-generation-webui generation complete")
                        break

            except GenerationCancelled:
                logger.debug("Cancelled while sending the request")

            except (aiohttp.ClientError, ConnectionResetError) as e:
                if token.cancelled:
                    return
                raise NetworkError(f"WebSocket stream from {url} failed: {e}") from e

            finally:
                remove()
                pump.cancel()
                await asyncio.gather(pump, return_exceptions=True)
                await ws.close()

    @staticmethod
    async def _pump(ws: aiohttp.ClientWebSocketResponse, bridge: PushPullBridge) -> None:
        """Forward socket events into the bridge until the socket closes."""
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await bridge.push(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    bridge.fail(NetworkError(f"WebSocket error: {ws.exception()}"))
                    return
            bridge.close()
        except (aiohttp.ClientError, ConnectionResetError) as e:
            bridge.fail(NetworkError(f"WebSocket receive failed: {e}"))
