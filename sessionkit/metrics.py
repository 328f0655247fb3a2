from __future__ import annotations

import threading
from typing import Dict, Mapping, Protocol


class MetricsCollector(Protocol):
    def increment(self, name: str, amount: int = 1) -> None: ...

    def snapshot(self) -> Dict[str, int]: ...

    def reset(self) -> None: ...


class InMemoryMetrics:
    """Process-local counters; the admin tooling reads and resets them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {}

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + amount

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()


def render_prometheus(counters: Mapping[str, int], *, prefix: str = "sessionkit") -> str:
    """Render counters in Prometheus text exposition format."""
    lines = []
    for name in sorted(counters):
        metric = f"{prefix}_{name}_total"
        lines.append(f"# TYPE {metric} counter")
        lines.append(f"{metric} {counters[name]}")
    return "\n".join(lines) + ("\n" if lines else "")
