import logging
from typing import AsyncIterator, Optional

from inkwell.core.cancel import CancelToken
from inkwell.llm.http import HttpBackend
from inkwell.llm.options import translate_options
from inkwell.core.types import BackendKind, CompletionRequest, NormalizedChunk, TokenizeResult

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/extra/generate/stream"
ABORT_PATH = "/api/extra/abort"


class KoboldCppBackend(HttpBackend):
    """
    Client for koboldcpp's streaming extension of the KoboldAI API.

    Dropping the connection does not stop koboldcpp from generating, so
    cancellation must also call abort().
    """

    kind = BackendKind.KOBOLDCPP

    async def tokenize(
        self, endpoint: str, text: str, cancel_token: Optional[CancelToken] = None
    ) -> TokenizeResult:
        return TokenizeResult()

    async def stream_completion(
        self, endpoint: str, request: CompletionRequest, cancel_token: Optional[CancelToken] = None
    ) -> AsyncIterator[NormalizedChunk]:
        token = cancel_token or CancelToken()
        payload = translate_options(self.kind, request.to_options())

        async for record in self._stream_records(endpoint, STREAM_PATH, payload, token):
            content = record.get("token") if isinstance(record, dict) else None
            if content:
                yield NormalizedChunk(content=content)

    async def abort(self, endpoint: str) -> None:
        logger.info("Asking koboldcpp to abort generation")
        await self._post_json(endpoint, ABORT_PATH, {})
