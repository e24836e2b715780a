from enum import Enum, auto

class GenerationState(Enum):
    IDLE = auto()
    REQUESTING = auto()  # pre-flight tokenize
    STREAMING = auto()
    COMPLETED = auto()
    CANCELLED = auto()
    FAILED = auto()

ACTIVE_STATES = frozenset({GenerationState.REQUESTING, GenerationState.STREAMING})
TERMINAL_STATES = frozenset({GenerationState.COMPLETED, GenerationState.CANCELLED, GenerationState.FAILED})
