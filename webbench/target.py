# webbench/target.py
# Simulated backend to point webbench at: fixed bodies, chosen status codes,
# artificial latency and error rate.
import argparse
import asyncio
import random
import threading
import time

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import JSONResponse, PlainTextResponse, Response

app = FastAPI(title="webbench target")
REQUESTS = Counter("target_requests_total", "Total requests", ["endpoint"])
LATENCY = Histogram("target_latency_seconds", "Target latency seconds")
ERRORS = Counter("target_errors_total", "Simulated errors")

app.state.body = "hello"
app.state.latency = 100
app.state.jitter = 20
app.state.error_rate = 0.01


@app.api_route("/ok", methods=["GET", "POST"])
async def ok():
    REQUESTS.labels("/ok").inc()
    return PlainTextResponse(app.state.body)


@app.get("/status/{code}")
async def status(code: int):
    REQUESTS.labels("/status").inc()
    return PlainTextResponse(f"status {code}", status_code=code)


@app.get("/slow")
async def slow(ms: int = 100):
    REQUESTS.labels("/slow").inc()
    await asyncio.sleep(ms / 1000.0)
    return PlainTextResponse(app.state.body)


@app.api_route("/echo", methods=["GET", "POST"])
async def echo(request: Request):
    REQUESTS.labels("/echo").inc()
    raw = await request.body()
    return JSONResponse({
        "method": request.method,
        "query": dict(request.query_params),
        "body": raw.decode("utf-8", errors="replace"),
        "content_type": request.headers.get("content-type", ""),
        "headers": dict(request.headers),
    })


@app.get("/infer")
async def infer():
    REQUESTS.labels("/infer").inc()
    start = time.time()
    if random.random() < app.state.error_rate:
        ERRORS.inc()
        raise HTTPException(status_code=500, detail="simulated error")
    wait = max(0, random.uniform(-app.state.jitter, app.state.jitter) + app.state.latency) / 1000.0
    await asyncio.sleep(wait)
    LATENCY.observe(time.time() - start)
    return {"status": "ok", "latency_ms": wait * 1000}


@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def serve_in_thread(port: int, host: str = "127.0.0.1", timeout: float = 10.0) -> uvicorn.Server:
    """Start the target on a daemon thread; stop it with `server.should_exit = True`."""
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))
    t = threading.Thread(target=server.run, daemon=True)
    t.start()
    deadline = time.time() + timeout
    while not server.started:
        if not t.is_alive() or time.time() > deadline:
            raise RuntimeError(f"target did not start on {host}:{port}")
        time.sleep(0.01)
    return server


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8101)
    p.add_argument("--body", default="hello")
    p.add_argument("--latency", type=int, default=100)
    p.add_argument("--jitter", type=int, default=20)
    p.add_argument("--error", type=float, default=0.01)
    args = p.parse_args()
    app.state.body = args.body
    app.state.latency = args.latency
    app.state.jitter = args.jitter
    app.state.error_rate = args.error
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
