from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from inkwell.core.cancel import CancelToken
from inkwell.core.types import BackendKind, CompletionRequest, NormalizedChunk, TokenizeResult

class ABCBackend(ABC):
    """
    Interface for inference server backends.
    Responsibility: Count prompt tokens and stream generated text as NormalizedChunks.
    """

    kind: BackendKind

    @abstractmethod
    async def tokenize(
        self, endpoint: str, text: str, cancel_token: Optional[CancelToken] = None
    ) -> TokenizeResult:
        """
        Count the tokens of text.
        Backends without a tokenize endpoint return an empty result.
        """
        pass

    @abstractmethod
    def stream_completion(
        self, endpoint: str, request: CompletionRequest, cancel_token: Optional[CancelToken] = None
    ) -> AsyncIterator[NormalizedChunk]:
        """
        Start a generation and yield its chunks in arrival order.
        Ends silently once cancel_token fires.
        """
        pass

    async def abort(self, endpoint: str) -> None:
        """Stop server-side generation. Only needed where closing the stream does not."""
        pass
