from dataclasses import dataclass, field, fields
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple

from yarl import URL


class BackendKind(str, Enum):
    """Inference server families the client can talk to."""
    LLAMACPP = "llamacpp"    # HTTP + text/event-stream
    TEXTGEN = "textgen"      # WebSocket push events
    KOBOLDCPP = "koboldcpp"  # HTTP + text/event-stream, explicit abort call


class MirostatMode(IntEnum):
    OFF = 0
    V1 = 1
    V2 = 2


# Scheme and port each backend listens on out of the box
DEFAULT_ENDPOINTS: Dict[BackendKind, Tuple[str, int]] = {
    BackendKind.LLAMACPP: ("http", 8080),
    BackendKind.TEXTGEN: ("ws", 5005),
    BackendKind.KOBOLDCPP: ("http", 5001),
}

_SECURE = {"http": "https", "ws": "wss"}


def endpoint_for_backend(endpoint: str, kind: BackendKind) -> str:
    """
    Rewrite an endpoint's scheme and port to the defaults of another backend.

    The host is kept; TLS is kept if the old endpoint used it.
    """
    url = URL(endpoint)
    scheme, port = DEFAULT_ENDPOINTS[kind]
    if url.scheme in ("https", "wss"):
        scheme = _SECURE[scheme]
    return str(URL.build(scheme=scheme, host=url.host or "localhost", port=port))


@dataclass(frozen=True)
class CompletionRequest:
    """Backend-independent description of one generation."""
    prompt: str
    temperature: Optional[float] = None
    repeat_penalty: Optional[float] = None
    repeat_last_n: Optional[int] = None
    penalize_nl: Optional[bool] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    top_k: Optional[int] = None
    top_p: Optional[float] = None
    typical_p: Optional[float] = None
    tfs_z: Optional[float] = None
    mirostat: MirostatMode = MirostatMode.OFF
    mirostat_tau: Optional[float] = None
    mirostat_eta: Optional[float] = None
    ignore_eos: Optional[bool] = None
    seed: Optional[int] = None
    max_tokens: Optional[int] = None
    stop: Tuple[str, ...] = ()
    n_probs: Optional[int] = None
    context_length: Optional[int] = None

    def to_options(self) -> Dict[str, Any]:
        """
        Generic option dict sent to the option translator.

        Mirostat replaces the top-k/top-p/typical/tail-free samplers, so only
        one of the two groups is sent. Unset values are left out.
        """
        if self.mirostat:
            skipped = {"top_k", "top_p", "typical_p", "tfs_z"}
        else:
            skipped = {"mirostat_tau", "mirostat_eta"}

        options: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in skipped or value is None:
                continue
            if f.name == "stop":
                if not value:
                    continue
                value = list(value)
            elif f.name == "mirostat":
                value = int(value)
            options[f.name] = value
        return options


@dataclass
class TokenProbability:
    token: str
    probability: float


@dataclass
class NormalizedChunk:
    """A piece of generated text, identical in shape for every backend."""
    content: str
    completion_probabilities: Optional[List[List[TokenProbability]]] = None

    @property
    def token_count(self) -> int:
        if self.completion_probabilities:
            return len(self.completion_probabilities)
        return 1


@dataclass
class TokenizeResult:
    token_count: int = 0
    tokens: List[int] = field(default_factory=list)
