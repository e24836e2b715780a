from enum import Enum, auto

class Event(Enum):
    GENERATION_STARTED = auto()
    TOKEN_COUNT_UPDATED = auto()
    CHUNK_RECEIVED = auto()
    GENERATION_COMPLETED = auto()
    GENERATION_CANCELLED = auto()
    GENERATION_FAILED = auto()
    ERROR_OCCURRED = auto()  # failures outside a generation (pre-flight)
