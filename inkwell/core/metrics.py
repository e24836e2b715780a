import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional
import logging

logger = logging.getLogger("metrics")

@dataclass
class MetricsRegistry:
    """In-process counters and latencies for generations and token counts."""
    counters: Dict[str, int] = field(default_factory=dict)
    latencies: Dict[str, List[float]] = field(default_factory=dict)

    def increment(self, name: str, tags: Dict[str, str] = None):
        key = self._format_key(name, tags)
        self.counters[key] = self.counters.get(key, 0) + 1
        logger.debug(f"Metric inc: {key} = {self.counters[key]}")

    def record_latency(self, name: str, value_ms: float, tags: Dict[str, str] = None):
        key = self._format_key(name, tags)
        self.latencies.setdefault(key, []).append(value_ms)
        logger.debug(f"Metric latency: {key} = {value_ms:.1f}ms", extra={"latency_ms": value_ms, "metric": name})

    @contextmanager
    def timed(self, name: str, tags: Dict[str, str] = None) -> Iterator[None]:
        """Record the duration of the block, unless it raises."""
        started = time.monotonic()
        yield
        self.record_latency(name, (time.monotonic() - started) * 1000, tags)

    def last_latency(self, name: str, tags: Dict[str, str] = None) -> Optional[float]:
        values = self.latencies.get(self._format_key(name, tags))
        return values[-1] if values else None

    def reset(self):
        self.counters.clear()
        self.latencies.clear()

    def _format_key(self, name: str, tags: Dict[str, str] = None) -> str:
        if not tags:
            return name
        tag_str = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
        return f"{name}[{tag_str}]"

# Global instance
metrics = MetricsRegistry()
