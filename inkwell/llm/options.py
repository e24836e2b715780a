"""
Per-backend option names.

Every backend accepts the same sampling knobs under different JSON field
names. OPTION_TABLES maps the generic names produced by
CompletionRequest.to_options() onto each backend's names. Values are passed
through untouched; generic options a backend has no field for are dropped.
"""

from typing import Any, Dict, Mapping

from inkwell.core.types import BackendKind

LLAMACPP_OPTIONS: Dict[str, str] = {
    "prompt": "prompt",
    "temperature": "temperature",
    "repeat_penalty": "repeat_penalty",
    "repeat_last_n": "repeat_last_n",
    "penalize_nl": "penalize_nl",
    "presence_penalty": "presence_penalty",
    "frequency_penalty": "frequency_penalty",
    "top_k": "top_k",
    "top_p": "top_p",
    "typical_p": "typical_p",
    "tfs_z": "tfs_z",
    "mirostat": "mirostat",
    "mirostat_tau": "mirostat_tau",
    "mirostat_eta": "mirostat_eta",
    "ignore_eos": "ignore_eos",
    "seed": "seed",
    "max_tokens": "n_predict",
    "stop": "stop",
    "n_probs": "n_probs",
}

# text-generation-webui legacy streaming API
TEXTGEN_OPTIONS: Dict[str, str] = {
    "prompt": "prompt",
    "temperature": "temperature",
    "repeat_penalty": "repetition_penalty",
    "repeat_last_n": "repetition_penalty_range",
    "presence_penalty": "presence_penalty",
    "frequency_penalty": "frequency_penalty",
    "top_k": "top_k",
    "top_p": "top_p",
    "typical_p": "typical_p",
    "tfs_z": "tfs",
    "mirostat": "mirostat_mode",
    "mirostat_tau": "mirostat_tau",
    "mirostat_eta": "mirostat_eta",
    "ignore_eos": "ban_eos_token",
    "seed": "seed",
    "max_tokens": "max_new_tokens",
    "stop": "stopping_strings",
    "context_length": "truncation_length",
}

# KoboldAI API as served by koboldcpp
KOBOLDCPP_OPTIONS: Dict[str, str] = {
    "prompt": "prompt",
    "temperature": "temperature",
    "repeat_penalty": "rep_pen",
    "repeat_last_n": "rep_pen_range",
    "top_k": "top_k",
    "top_p": "top_p",
    "typical_p": "typical",
    "tfs_z": "tfs",
    "mirostat": "mirostat",
    "mirostat_tau": "mirostat_tau",
    "mirostat_eta": "mirostat_eta",
    "ignore_eos": "use_default_badwordsids",
    "seed": "sampler_seed",
    "max_tokens": "max_length",
    "stop": "stop_sequence",
    "context_length": "max_context_length",
}

OPTION_TABLES: Dict[BackendKind, Dict[str, str]] = {
    BackendKind.LLAMACPP: LLAMACPP_OPTIONS,
    BackendKind.TEXTGEN: TEXTGEN_OPTIONS,
    BackendKind.KOBOLDCPP: KOBOLDCPP_OPTIONS,
}


def translate_options(kind: BackendKind, options: Mapping[str, Any]) -> Dict[str, Any]:
    """Rename generic options to the native field names of ``kind``."""
    table = OPTION_TABLES[kind]
    return {table[name]: value for name, value in options.items() if name in table}


def reverse_options(kind: BackendKind, native: Mapping[str, Any]) -> Dict[str, Any]:
    """Map native field names of ``kind`` back to generic option names."""
    inverse = {dest: src for src, dest in OPTION_TABLES[kind].items()}
    return {inverse[name]: value for name, value in native.items() if name in inverse}
