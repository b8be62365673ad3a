from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class RequestState:
    """Per-process invocation counters used to decide when a worker should be recycled.

    ``record_request`` must stay synchronous: the increment and the threshold check
    happen with no await between them, so concurrent invocations on one loop
    cannot both observe the threshold crossing.
    """

    max_requests: int | None = None
    ttl_extend_seconds: int = 3600
    runtime: str = "dedicated"
    request_count: int = 0
    last_request_time: int = field(default_factory=_now_ms)
    _recycle_signaled: bool = False

    def record_request(self) -> bool:
        """Count one invocation. Returns True only on the call that first reaches the quota."""
        self.request_count += 1
        self.last_request_time = _now_ms()
        if self.should_recycle() and not self._recycle_signaled:
            self._recycle_signaled = True
            return True
        return False

    def should_recycle(self) -> bool:
        return self.max_requests is not None and self.request_count >= self.max_requests

    @property
    def requests_remaining(self) -> int | None:
        if self.max_requests is None:
            return None
        return max(0, self.max_requests - self.request_count)

    def health_status(self, tool_names: list[str]) -> dict[str, Any]:
        return {
            "status": "running",
            "requests": self.request_count,
            "maxRequests": self.max_requests,
            "requestsRemaining": self.requests_remaining,
            "lastRequestTime": self.last_request_time,
            "ttlExtendSeconds": self.ttl_extend_seconds,
            "runtime": self.runtime,
            "tools": list(tool_names),
        }
