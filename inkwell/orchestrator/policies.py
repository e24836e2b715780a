from dataclasses import dataclass

@dataclass
class Policies:
    # Some servers produce garbage when a new generation starts right after
    # an aborted one
    cooldown_seconds: float = 0.5
    tokenize_debounce_seconds: float = 0.5
    preflight_tokenize: bool = True
