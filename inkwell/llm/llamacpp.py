import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from inkwell.core.cancel import CancelToken
from inkwell.core.exceptions import ProtocolError
from inkwell.llm.http import HttpBackend
from inkwell.llm.options import translate_options
from inkwell.core.types import (
    BackendKind,
    CompletionRequest,
    NormalizedChunk,
    TokenizeResult,
    TokenProbability,
)

logger = logging.getLogger(__name__)

TOKENIZE_PATH = "/tokenize"
COMPLETION_PATH = "/completion"


class LlamaCppBackend(HttpBackend):
    """
    Client for the llama.cpp HTTP server.
    Streams /completion as text/event-stream, one JSON object per event.
    """

    kind = BackendKind.LLAMACPP

    async def tokenize(
        self, endpoint: str, text: str, cancel_token: Optional[CancelToken] = None
    ) -> TokenizeResult:
        # The server tokenizes without BOS and the prompt is sent with a
        # leading space, so the count gains one token for BOS
        reply = await self._post_json(endpoint, TOKENIZE_PATH, {"content": f" {text}"}, cancel_token)
        tokens = reply.get("tokens") if isinstance(reply, dict) else None
        if not isinstance(tokens, list):
            raise ProtocolError(f"llama.cpp tokenize reply has no token list: {str(reply)[:80]!r}")
        return TokenizeResult(token_count=len(tokens) + 1, tokens=tokens)

    async def stream_completion(
        self, endpoint: str, request: CompletionRequest, cancel_token: Optional[CancelToken] = None
    ) -> AsyncIterator[NormalizedChunk]:
        token = cancel_token or CancelToken()
        payload = translate_options(self.kind, request.to_options())
        payload["stream"] = True

        logger.debug(f"Sending prompt to llama.cpp (length: {len(request.prompt)} chars)")

        async for record in self._stream_records(endpoint, COMPLETION_PATH, payload, token):
            if not isinstance(record, dict):
                logger.warning(f"Ignoring non-object event from llama.cpp: {record!r}")
                continue

            chunk = self.normalize(record)
            if chunk.content:
                yield chunk

            if record.get("stop", False):
                logger.info("llama.cpp generation complete")
                break

    @staticmethod
    def normalize(record: Dict[str, Any]) -> NormalizedChunk:
        probabilities: Optional[List[List[TokenProbability]]] = None
        raw = record.get("completion_probabilities")
        if raw:
            probabilities = [
                [TokenProbability(token=p["tok_str"], probability=p["prob"]) for p in entry.get("probs", [])]
                for entry in raw
            ]
        return NormalizedChunk(content=record.get("content") or "", completion_probabilities=probabilities)
