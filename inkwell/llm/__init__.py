"""
LLM Module - inkwell

Streaming clients for local inference servers.

Main Components:
- LlamaCppBackend: llama.cpp server (HTTP, text/event-stream)
- TextGenBackend: text-generation-webui (WebSocket)
- KoboldCppBackend: koboldcpp (HTTP, text/event-stream, explicit abort)
- create_backend: pick the backend for a BackendKind

Example Usage:
    from inkwell.llm import create_backend
    from inkwell.core.types import BackendKind, CompletionRequest

    backend = create_backend(BackendKind.LLAMACPP)
    request = CompletionRequest(prompt="Once upon a time", max_tokens=64)

    async for chunk in backend.stream_completion("http://localhost:8080", request):
        print(chunk.content, end='', flush=True)
"""

from typing import Dict, Optional, Type, Union

from inkwell.core.exceptions import ConfigurationError
from inkwell.core.types import BackendKind
from inkwell.interfaces.backend import ABCBackend
from inkwell.llm.llamacpp import LlamaCppBackend
from inkwell.llm.textgen import TextGenBackend
from inkwell.llm.koboldcpp import KoboldCppBackend

BACKENDS: Dict[BackendKind, Type[ABCBackend]] = {
    BackendKind.LLAMACPP: LlamaCppBackend,
    BackendKind.TEXTGEN: TextGenBackend,
    BackendKind.KOBOLDCPP: KoboldCppBackend,
}

def create_backend(kind: Union[BackendKind, str], timeout_seconds: Optional[float] = None) -> ABCBackend:
    try:
        kind = BackendKind(kind)
    except ValueError:
        raise ConfigurationError(f"Unknown backend: {kind!r}") from None
    return BACKENDS[kind](timeout_seconds=timeout_seconds)

__all__ = [
    "BACKENDS",
    "create_backend",
    "LlamaCppBackend",
    "TextGenBackend",
    "KoboldCppBackend",
]
