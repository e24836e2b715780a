"""Entry points used by the editor layer: one call per backend operation."""

from typing import AsyncIterator, Optional, Union

from inkwell.core.cancel import CancelToken
from inkwell.core.types import BackendKind, CompletionRequest, NormalizedChunk, TokenizeResult
from inkwell.llm import create_backend

async def tokenize(
    endpoint: str,
    backend: Union[BackendKind, str],
    text: str,
    cancel_token: Optional[CancelToken] = None,
) -> TokenizeResult:
    return await create_backend(backend).tokenize(endpoint, text, cancel_token)

def stream_completion(
    endpoint: str,
    backend: Union[BackendKind, str],
    request: CompletionRequest,
    cancel_token: Optional[CancelToken] = None,
) -> AsyncIterator[NormalizedChunk]:
    return create_backend(backend).stream_completion(endpoint, request, cancel_token)

async def abort(endpoint: str, backend: Union[BackendKind, str]) -> None:
    """Stop server-side generation; a no-op for backends that stop when the stream closes."""
    await create_backend(backend).abort(endpoint)
