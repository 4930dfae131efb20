#!/usr/bin/env python3
# webbench/benchmark.py
# Benchmark driver: expand targets into jobs, run them on the worker pool, report.
import argparse
import csv
import json
import logging
import os
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from prometheus_client import CollectorRegistry
from pydantic import BaseModel, ValidationError, field_validator

from webbench.log import setup_logging
from webbench.pool import WaitGroup, WorkerPool
from webbench.request import (
    DEFAULT_TIMEOUT,
    ClientPool,
    Request,
    RequestError,
    normalize_url,
    parse_method,
)
from webbench.script import Script, ScriptError
from webbench.stats import Stats
from webbench.version import __version__

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = int(os.getenv("WEBBENCH_CONCURRENCY", "10"))
DEFAULT_LOG = os.getenv("WEBBENCH_LOG")


class ConfigError(Exception):
    pass


def _str_map(v) -> Dict[str, str]:
    if v is None:
        return {}
    if not isinstance(v, dict):
        raise ValueError("expected a JSON object")
    return {str(k): val if isinstance(val, str) else json.dumps(val) for k, val in v.items()}


class BenchmarkItem(BaseModel):
    url: str
    headers: Dict[str, str] = {}
    params: Dict[str, str] = {}
    method: str = "get"
    body: Optional[str] = None
    times: int = 1

    @field_validator("url")
    @classmethod
    def _url(cls, v: str) -> str:
        v = normalize_url(v)
        if not v:
            raise ValueError("url cannot be empty")
        return v

    @field_validator("headers", "params", mode="before")
    @classmethod
    def _maps(cls, v):
        return _str_map(v)

    @field_validator("method", mode="before")
    @classmethod
    def _method(cls, v):
        v = str(v or "get").strip().lower()
        if v not in ("get", "post"):
            raise ValueError(f"unsupported method {v!r}")
        return v

    @field_validator("times", mode="before")
    @classmethod
    def _times(cls, v):
        try:
            return max(1, int(v))
        except (TypeError, ValueError):
            return 1


def load_items(path: str) -> List[BenchmarkItem]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"cannot open {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in {path}: {e}") from e

    if not isinstance(data, list):
        raise ConfigError(f"{path}: expected a JSON array of request descriptions")

    items = []
    for i, entry in enumerate(data):
        try:
            items.append(BenchmarkItem.model_validate(entry))
        except ValidationError as e:
            raise ConfigError(f"{path}: entry {i}: {e}") from e
    return items


class ResultRecorder:
    """Per-request rows (ts, latency_ms, status, url), written out as CSV."""

    def __init__(self):
        self._lock = threading.Lock()
        self.rows = []

    def record(self, url: str, status: int, latency_ms: float):
        with self._lock:
            self.rows.append((time.time(), latency_ms, status, url))

    def __len__(self):
        with self._lock:
            return len(self.rows)

    def save_csv(self, out: str):
        with self._lock:
            rows = sorted(self.rows)
        with open(out, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["ts", "latency_ms", "status", "url"])
            for r in rows:
                writer.writerow([int(r[0] * 1000), round(r[1], 3), r[2], r[3]])


@dataclass
class BenchmarkArgs:
    item: BenchmarkItem
    group: WaitGroup
    stats: Stats
    script: Optional[Script] = None
    timeout: float = DEFAULT_TIMEOUT
    recorder: Optional[ResultRecorder] = None
    client_pool: Optional[ClientPool] = None


def benchmark(args: BenchmarkArgs) -> Optional[int]:
    """Pool job: one request end to end. Returns the status code, None if never sent."""
    try:
        return _run_one(args)
    finally:
        args.group.done()


def _hook_passes(hook, arg) -> bool:
    try:
        return bool(hook(arg))
    except Exception as e:
        logger.error("script hook raised %r", e)
        return False


def _run_one(args: BenchmarkArgs) -> Optional[int]:
    item = args.item
    stats = args.stats
    req = Request(
        url=item.url,
        method=parse_method(item.method),
        headers=item.headers,
        params=item.params,
        body=item.body,
        timeout=args.timeout,
        client_pool=args.client_pool,
    )

    if args.script is not None and not _hook_passes(args.script.run_request, req):
        stats.add_total_reqs()
        stats.add_failure()
        logger.error("script request() rejected %s", req.url)
        return None

    err = None
    body = b""
    try:
        body = req.do()
    except RequestError as e:
        err = e
    except Exception as e:
        req.status = 0
        err = e

    stats.add_total_time(req.elapsed)
    stats.add_total_reqs()
    # transport errors land under status 0
    stats.add_status_count(req.status)
    if args.recorder is not None:
        args.recorder.record(req.url, req.status, req.elapsed)

    if err is not None:
        stats.add_failure()
        logger.error("request failed: %s", err)
        return req.status

    if req.status != 200:
        stats.add_failure()
        logger.error("%s %s returned status %d", req.method.value, req.url, req.status)
        return req.status

    if args.script is not None and not _hook_passes(args.script.run_check, body):
        stats.add_failure()
        logger.error("check failed: url=%s body=%s", req.url, body.decode("utf-8", errors="replace"))
        return req.status

    stats.add_total_recv_bytes(len(body))
    stats.update_req_elapsed(req.elapsed)
    stats.add_success()
    return req.status


def format_bytes(n: float) -> str:
    for unit in ("B", "KB", "MB"):
        if n < 1024:
            return f"{n:.0f} {unit}" if unit == "B" else f"{n:.2f} {unit}"
        n /= 1024.0
    return f"{n:.2f} GB"


@dataclass
class Report:
    stats: Stats
    concurrency: int
    wall_ms: float
    round_no: int = 1
    snap: dict = field(init=False)

    def __post_init__(self):
        self.snap = self.stats.snapshot()

    @property
    def requests_per_second(self) -> float:
        return self.snap["total_reqs"] * 1000.0 / max(self.wall_ms, 1.0)

    @property
    def transfer_per_second(self) -> float:
        return self.snap["total_recv_bytes"] * 1000.0 / max(self.wall_ms, 1.0)

    def format(self) -> str:
        s = self.snap
        total = max(s["total_reqs"], 1)
        lines = [
            "",
            f"     Benchmark Times({self.round_no}):",
            "-------------------------------",
            f"  Connections(Workers): {self.concurrency}",
            f"  Success Total: {s['success']} reqs",
            f"  Failure Total: {s['failure']} reqs",
            f"  Success Rate: {s['success'] * 100 // total}%",
            f"  Receive Data: {format_bytes(s['total_recv_bytes'])}",
            f"  Fastest Request: {s['min_req_elapsed']:.2f}ms",
            f"  Slowest Request: {s['max_req_elapsed']:.2f}ms",
            f"  Average Request Time: {s['total_times'] / total:.2f}ms",
            f"  Requests/sec: {self.requests_per_second:.2f}",
            f"  Transfer/sec: {format_bytes(self.transfer_per_second)}",
            "-------------------------------",
        ]
        for code in sorted(s["status_stats"]):
            lines.append(f"Status {code}: {s['status_stats'][code]} reqs")
        return "\n".join(lines)


def run_benchmark(
    items: List[BenchmarkItem],
    concurrency: int,
    script: Optional[Script] = None,
    timeout: float = DEFAULT_TIMEOUT,
    recorder: Optional[ResultRecorder] = None,
    round_no: int = 1,
    stats: Optional[Stats] = None,
    client_pool: Optional[ClientPool] = None,
) -> Report:
    stats = stats or Stats()
    group = WaitGroup()

    t0 = time.perf_counter()
    with WorkerPool(concurrency) as pool:
        for item in items:
            for _ in range(item.times):
                group.add()
                pool.submit(benchmark, BenchmarkArgs(
                    item=item,
                    group=group,
                    stats=stats,
                    script=script,
                    timeout=timeout,
                    recorder=recorder,
                    client_pool=client_pool,
                ))
        logger.info("submitted %d jobs to %d workers", pool.last_id, concurrency)
        group.wait()
    wall_ms = (time.perf_counter() - t0) * 1000.0

    return Report(stats=stats, concurrency=concurrency, wall_ms=wall_ms, round_no=round_no)


def _json_map(flag: str, raw: Optional[str]) -> Dict[str, str]:
    if not raw:
        return {}
    try:
        return _str_map(json.loads(raw))
    except (json.JSONDecodeError, ValueError) as e:
        raise ConfigError(f"{flag}: expected a JSON object: {e}") from e


def items_from_args(args) -> List[BenchmarkItem]:
    if args.file:
        return load_items(args.file)
    if not args.url:
        raise ConfigError("no target: pass -l URL or -f FILE")
    try:
        return [BenchmarkItem(
            url=args.url,
            headers=_json_map("-H", args.headers),
            params=_json_map("-A", args.params),
            method=args.method,
            body=args.body,
            times=args.requests,
        )]
    except ValidationError as e:
        raise ConfigError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="webbench", description="HTTP load generator")
    p.add_argument("-l", "--url", help="target URL (http:// is added when missing)")
    p.add_argument("-f", "--file", help="JSON batch file of request descriptions")
    p.add_argument("-c", "--concurrency", type=int, default=DEFAULT_CONCURRENCY, help="worker pool size")
    p.add_argument("-n", "--requests", type=int, default=1, help="requests to issue against -l")
    p.add_argument("-t", "--times", type=int, default=1, help="benchmark rounds")
    p.add_argument("-i", "--interval", type=float, default=1.0, help="seconds between rounds")
    p.add_argument("-m", "--method", default="GET", help="GET or POST")
    p.add_argument("-H", "--headers", help="header map as a JSON object")
    p.add_argument("-A", "--params", help="parameter map as a JSON object")
    p.add_argument("-B", "--body", help="literal POST body")
    p.add_argument("-s", "--script", help="Python script defining init/request/check")
    p.add_argument("-L", "--log", default=DEFAULT_LOG, help="error log file")
    p.add_argument("-o", "--out", help="write per-request results to this CSV")
    p.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="request timeout (s)")
    p.add_argument("--metrics-port", type=int, help="expose prometheus metrics on this port")
    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        setup_logging(args.log)
        if args.concurrency <= 0:
            raise ConfigError(f"-c must be positive, got {args.concurrency}")
        items = items_from_args(args)
        script = Script.load(args.script) if args.script else None
    except OSError as e:
        print(f"webbench: cannot open log file: {e}", file=sys.stderr)
        return 1
    except (ConfigError, ScriptError) as e:
        print(f"webbench: {e}", file=sys.stderr)
        return 1

    registry = None
    if args.metrics_port:
        registry = CollectorRegistry()
        Stats.serve_registry(registry, args.metrics_port)
        print(f"metrics on http://0.0.0.0:{args.metrics_port}/metrics")

    recorder = ResultRecorder() if args.out else None
    rounds = max(1, args.times)
    for i in range(rounds):
        stats = Stats(registry=registry)
        report = run_benchmark(
            items,
            args.concurrency,
            script=script,
            timeout=args.timeout,
            recorder=recorder,
            round_no=i + 1,
            stats=stats,
        )
        print(report.format())
        stats.unregister()
        if i < rounds - 1:
            time.sleep(args.interval)

    if recorder is not None:
        recorder.save_csv(args.out)
        print(f"saved {len(recorder)} rows to {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
