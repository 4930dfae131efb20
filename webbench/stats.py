# webbench/stats.py
import threading
from typing import Dict, Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    start_http_server,
)

LATENCY_BUCKETS_MS = [5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000]


class Stats:
    """
    Shared counters updated by every worker during a run.

    Scalars share one lock, extrema and the status histogram each get their own.
    Updates are mirrored into a private prometheus registry so a run can be
    scraped while it is in flight.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.success = 0
        self.failure = 0
        self.total_times = 0.0
        self.total_reqs = 0
        self.total_recv_bytes = 0

        self._counter_lock = threading.Lock()

        self._elapsed_lock = threading.Lock()
        self.max_req_elapsed = 0.0
        self.min_req_elapsed = 0.0  # 0 means unset

        self._status_lock = threading.Lock()
        self.status_stats: Dict[int, int] = {}

        # private registry by default: several runs in one process must not collide
        self.registry = registry if registry is not None else CollectorRegistry()
        self._reqs_c = Counter("webbench_requests", "Requests issued", registry=self.registry)
        self._success_c = Counter("webbench_success", "Successful requests", registry=self.registry)
        self._failure_c = Counter("webbench_failure", "Failed requests", registry=self.registry)
        self._bytes_c = Counter("webbench_received_bytes", "Response bytes received", registry=self.registry)
        self._status_c = Counter("webbench_status", "Responses by status code", ["code"], registry=self.registry)
        self._latency_h = Histogram(
            "webbench_request_latency_ms",
            "Request latency in milliseconds",
            buckets=LATENCY_BUCKETS_MS,
            registry=self.registry,
        )

    def add_success(self):
        with self._counter_lock:
            self.success += 1
        self._success_c.inc()

    def add_failure(self):
        with self._counter_lock:
            self.failure += 1
        self._failure_c.inc()

    def add_total_time(self, ms: float):
        with self._counter_lock:
            self.total_times += ms
        self._latency_h.observe(ms)

    def add_total_reqs(self):
        with self._counter_lock:
            self.total_reqs += 1
        self._reqs_c.inc()

    def add_total_recv_bytes(self, n: int):
        with self._counter_lock:
            self.total_recv_bytes += n
        self._bytes_c.inc(n)

    def update_req_elapsed(self, ms: float):
        # callers pass ms > 0, so 0 can stand for "no sample yet"
        with self._elapsed_lock:
            if self.max_req_elapsed < ms:
                self.max_req_elapsed = ms
            if self.min_req_elapsed == 0 or ms < self.min_req_elapsed:
                self.min_req_elapsed = ms

    def add_status_count(self, code: int):
        with self._status_lock:
            if code not in self.status_stats:
                self.status_stats[code] = 0
            self.status_stats[code] += 1
        self._status_c.labels(code=str(code)).inc()

    def snapshot(self) -> dict:
        with self._counter_lock, self._elapsed_lock, self._status_lock:
            return {
                "success": self.success,
                "failure": self.failure,
                "total_times": self.total_times,
                "total_reqs": self.total_reqs,
                "total_recv_bytes": self.total_recv_bytes,
                "max_req_elapsed": self.max_req_elapsed,
                "min_req_elapsed": self.min_req_elapsed,
                "status_stats": dict(self.status_stats),
            }

    def _collectors(self):
        return (self._reqs_c, self._success_c, self._failure_c,
                self._bytes_c, self._status_c, self._latency_h)

    def unregister(self):
        """Drop this run's collectors so the next run can register into the same registry."""
        for c in self._collectors():
            try:
                self.registry.unregister(c)
            except KeyError:
                pass

    def serve_metrics(self, port: int, addr: str = "0.0.0.0"):
        """Expose this run's registry on http://addr:port/metrics."""
        return self.serve_registry(self.registry, port, addr)

    @staticmethod
    def serve_registry(registry: CollectorRegistry, port: int, addr: str = "0.0.0.0"):
        return start_http_server(port, addr=addr, registry=registry)
