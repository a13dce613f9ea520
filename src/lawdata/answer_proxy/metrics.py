from __future__ import annotations

import time
from collections import deque, defaultdict
from dataclasses import dataclass
from typing import Deque, Dict, Optional


@dataclass
class StreamSample:
    ts: float
    model: str
    origin: str
    status: str
    ttfc_ms: Optional[float]
    chars_out: int
    chunks_out: int
    duration_ms: float
    chars_per_second: float


class MetricsAggregator:
    def __init__(self, capacity: int = 500):
        self.capacity = capacity
        self.samples: Deque[StreamSample] = deque(maxlen=capacity)
        self.start_ts = time.time()
        self.status_counters: Dict[str, int] = defaultdict(int)
        self.rejections: Dict[str, int] = defaultdict(int)
        self.request_index = 0

    def add(self, sample: StreamSample):
        self.samples.append(sample)
        self.status_counters[sample.status] += 1
        self.request_index += 1

    def reject(self, err_type: str):
        """Count a request refused before streaming started."""
        self.rejections[err_type] += 1

    def summary(self) -> dict:
        base = {
            "uptime_seconds": time.time() - self.start_ts,
            "streams_by_status": dict(self.status_counters),
            "rejections": dict(self.rejections),
            "schema_version": 1,
        }
        if not self.samples:
            base["rolling"] = {"count": 0}
            return base
        ttfcs = sorted(s.ttfc_ms for s in self.samples if s.ttfc_ms is not None)
        cps = [s.chars_per_second for s in self.samples if s.chars_per_second > 0]
        p95 = ttfcs[int(0.95 * (len(ttfcs) - 1))] if ttfcs else None
        base["rolling"] = {
            "count": len(self.samples),
            "avg_ttfc_ms": (sum(ttfcs) / len(ttfcs)) if ttfcs else None,
            "p95_ttfc_ms": p95,
            "avg_chars_per_second": (sum(cps) / len(cps)) if cps else None,
            "avg_chars_out": sum(s.chars_out for s in self.samples) / len(self.samples),
        }
        return base
