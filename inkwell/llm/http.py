import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
from yarl import URL

from inkwell.core.cancel import CancelToken
from inkwell.core.exceptions import ConfigurationError, GenerationCancelled, NetworkError, ProtocolError
from inkwell.interfaces.backend import ABCBackend
from inkwell.llm.sse import decode_utf8, parse_event_stream

logger = logging.getLogger(__name__)


def endpoint_url(endpoint: str, path: str) -> URL:
    try:
        return URL(endpoint).with_path(path)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid endpoint {endpoint!r}: {e}") from e


class HttpBackend(ABCBackend):
    """
    Shared plumbing for backends that speak JSON over HTTP and stream with
    text/event-stream.
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    def _session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=self.timeout)

    async def _check_status(self, response: aiohttp.ClientResponse) -> None:
        if not response.ok:
            error_text = await response.text()
            logger.error(f"{self.kind.value} API error {response.status}: {error_text[:200]}")
            raise NetworkError(f"HTTP {response.status}", status=response.status)

    async def _post_json(
        self,
        endpoint: str,
        path: str,
        payload: Dict[str, Any],
        cancel_token: Optional[CancelToken] = None,
    ) -> Any:
        """POST a JSON body and return the decoded JSON reply."""
        token = cancel_token or CancelToken()
        if token.cancelled:
            raise GenerationCancelled(path)

        url = endpoint_url(endpoint, path)
        try:
            return await token.run(self._fetch_json(url, payload))
        except aiohttp.ClientError as e:
            raise NetworkError(f"{self.kind.value} request to {url} failed: {e}") from e
        except json.JSONDecodeError as e:
            raise ProtocolError(f"{self.kind.value} returned malformed JSON from {path}") from e

    async def _fetch_json(self, url: URL, payload: Dict[str, Any]) -> Any:
        async with self._session() as session:
            async with session.post(url, json=payload) as response:
                await self._check_status(response)
                # Servers do not always label their JSON replies
                return await response.json(content_type=None)

    async def _stream_records(
        self,
        endpoint: str,
        path: str,
        payload: Dict[str, Any],
        token: CancelToken,
    ) -> AsyncIterator[Any]:
        """POST a JSON body and yield the event-stream records of the reply."""
        if token.cancelled:
            return

        url = endpoint_url(endpoint, path)
        async with self._session() as session:
            try:
                response = await token.run(session.post(url, json=payload))
                async with response:
                    await self._check_status(response)

                    remove = token.add_callback(response.close)
                    try:
                        logger.info(f"Started receiving {self.kind.value} stream")
                        fragments = decode_utf8(self._read(response, token))
                        async for record in parse_event_stream(fragments):
                            if token.cancelled:
                                return
                            yield record
                    finally:
                        remove()

            except GenerationCancelled:
                logger.debug(f"{self.kind.value} request cancelled before the reply arrived")

            except aiohttp.ClientError as e:
                if token.cancelled:
                    logger.debug(f"Stream closed after cancellation: {e}")
                    return
                raise NetworkError(f"{self.kind.value} stream from {url} failed: {e}") from e

    @staticmethod
    async def _read(response: aiohttp.ClientResponse, token: CancelToken) -> AsyncIterator[bytes]:
        async for data in response.content.iter_any():
            if token.cancelled:
                return
            yield data
