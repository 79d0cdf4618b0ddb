"""
Memory telemetry for debugging large builds.

Samples Python heap usage (tracemalloc) around labelled pipeline stages and
logs the trend. Purely observational: nothing here affects the geometry.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import List, Optional
import logging
import time
import tracemalloc

logger = logging.getLogger(__name__)


@dataclass
class MemorySample:
    """One heap measurement."""
    label: str
    current_bytes: int
    peak_bytes: int
    timestamp: float

    @property
    def current_mb(self) -> float:
        return self.current_bytes / 1024 / 1024

    @property
    def peak_mb(self) -> float:
        return self.peak_bytes / 1024 / 1024


class MemoryMonitor:
    """
    Collects heap samples between start() and stop().

    Usage:
        monitor = MemoryMonitor()
        monitor.start()
        with monitor.stage("synthesize"):
            ...
        monitor.stop()
        print(monitor.summary())
    """

    def __init__(self):
        self.samples: List[MemorySample] = []
        self._started_tracing = False

    @property
    def is_monitoring(self) -> bool:
        return tracemalloc.is_tracing()

    def start(self) -> "MemoryMonitor":
        """Start tracing and record a baseline sample."""
        if not tracemalloc.is_tracing():
            tracemalloc.start()
            self._started_tracing = True
        self.samples = []
        self.sample("baseline")
        return self

    def sample(self, label: str = "usage") -> Optional[MemorySample]:
        """Record and log the current heap usage."""
        if not tracemalloc.is_tracing():
            logger.warning("Memory monitoring not active, call start() first")
            return None

        current, peak = tracemalloc.get_traced_memory()
        entry = MemorySample(label, current, peak, time.time())
        self.samples.append(entry)
        logger.debug(
            "Memory %s: %.2fMB current / %.2fMB peak",
            label, entry.current_mb, entry.peak_mb
        )
        return entry

    @contextmanager
    def stage(self, name: str):
        """Sample before and after a block."""
        self.sample(f"before {name}")
        try:
            yield self
        finally:
            self.sample(f"after {name}")

    def stop(self) -> List[MemorySample]:
        """Record a final sample and stop tracing if start() began it."""
        if tracemalloc.is_tracing():
            self.sample("final")
        if self._started_tracing:
            tracemalloc.stop()
            self._started_tracing = False
        if len(self.samples) > 1:
            logger.info(self.summary())
        return self.samples

    def summary(self) -> str:
        """Describe growth between the first and last sample."""
        if len(self.samples) < 2:
            return "Not enough memory samples"

        first, last = self.samples[0], self.samples[-1]
        growth = last.current_mb - first.current_mb
        peak = max(s.peak_mb for s in self.samples)
        return (
            f"Memory: {first.current_mb:.2f}MB -> {last.current_mb:.2f}MB "
            f"({growth:+.2f}MB), peak {peak:.2f}MB over {len(self.samples)} samples"
        )
