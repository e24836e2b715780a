import logging
import sys
import json
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Correlation id of the generation being processed (None outside of one)
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
            "correlation_id": _correlation_id.get(),
        }

        # Fields passed through logger.x(..., extra={...})
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                log_record[key] = value

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record, default=str)

class PlainFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        cid = _correlation_id.get()
        record.cid = f" [{cid[:8]}]" if cid else ""
        return super().format(record)

def setup_logging(level: str = "INFO", fmt: str = "json"):
    root = logging.getLogger()
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(StructuredFormatter(datefmt="%Y-%m-%dT%H:%M:%S%z"))
    else:
        handler.setFormatter(PlainFormatter("%(asctime)s %(levelname)s %(name)s%(cid)s: %(message)s"))
    root.addHandler(handler)

def set_correlation_id(cid: Optional[str]):
    _correlation_id.set(cid)

def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()
