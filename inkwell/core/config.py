import os
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, Optional, Tuple

from dotenv import load_dotenv

from inkwell.core.exceptions import ConfigurationError
from inkwell.core.types import BackendKind, CompletionRequest, MirostatMode

@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "json"

@dataclass
class BackendConfig:
    endpoint: str = "http://localhost:8080"
    kind: BackendKind = BackendKind.LLAMACPP
    timeout_seconds: Optional[float] = None  # None = no client-side timeout

@dataclass
class SamplingConfig:
    temperature: float = 0.7  # llama.cpp default 0.8
    repeat_penalty: float = 1.1
    repeat_last_n: int = 256  # llama.cpp default 64
    penalize_nl: bool = True
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    top_k: int = 40
    top_p: float = 0.95
    typical_p: float = 1.0
    tfs_z: float = 1.0
    mirostat: MirostatMode = MirostatMode.V2  # llama.cpp default 0
    mirostat_tau: float = 5.0
    mirostat_eta: float = 0.1
    ignore_eos: bool = False
    seed: Optional[int] = None
    max_tokens: Optional[int] = None
    stop: Tuple[str, ...] = ()
    n_probs: int = 10
    context_length: Optional[int] = None

    def to_request(self, prompt: str) -> CompletionRequest:
        return CompletionRequest(prompt=prompt, **{f.name: getattr(self, f.name) for f in fields(self)})

@dataclass
class Config:
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)

    @classmethod
    def load(cls, env_file: Optional[str] = None) -> "Config":
        """
        Build the configuration from INKWELL_* environment variables.

        Variables already set in the environment win over those in the
        .env file. Anything unset keeps its dataclass default.
        """
        load_dotenv(env_file)
        config = cls()
        _apply_env(config.logging, "INKWELL_LOG_")
        _apply_env(config.backend, "INKWELL_BACKEND_")
        _apply_env(config.sampling, "INKWELL_")
        return config

def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}

def _parse_optional(parse: Callable[[str], Any]) -> Callable[[str], Any]:
    def _parse(raw: str) -> Any:
        return None if raw.strip().lower() in {"", "none"} else parse(raw)
    return _parse

def _parse_stop(raw: str) -> Tuple[str, ...]:
    # Stop sequences are separated with "|"; escapes like \n are honoured
    return tuple(s.encode().decode("unicode_escape") for s in raw.split("|") if s)

_PARSERS: Dict[str, Callable[[str], Any]] = {
    "kind": BackendKind,
    "timeout_seconds": _parse_optional(float),
    "repeat_last_n": int,
    "top_k": int,
    "n_probs": int,
    "penalize_nl": _parse_bool,
    "ignore_eos": _parse_bool,
    "mirostat": lambda raw: MirostatMode(int(raw)),
    "seed": _parse_optional(int),
    "max_tokens": _parse_optional(int),
    "context_length": _parse_optional(int),
    "stop": _parse_stop,
}

_FLOATS = {"temperature", "repeat_penalty", "presence_penalty", "frequency_penalty",
           "top_p", "typical_p", "tfs_z", "mirostat_tau", "mirostat_eta"}

def _apply_env(section: Any, prefix: str) -> None:
    for f in fields(section):
        raw = os.environ.get(prefix + f.name.upper())
        if raw is None:
            continue
        parse = _PARSERS.get(f.name, float if f.name in _FLOATS else str)
        try:
            setattr(section, f.name, parse(raw))
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {prefix}{f.name.upper()}: {raw!r}") from e
