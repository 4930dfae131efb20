# webbench/request.py
# Single HTTP transaction: options bundle -> body bytes, status, elapsed ms.
import json
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Union
from urllib.parse import urlencode

import httpx

DEFAULT_TIMEOUT = 5.0


class Method(Enum):
    GET = "GET"
    POST = "POST"
    NONE = "NONE"


def parse_method(value: Optional[str]) -> Method:
    if not value:
        return Method.NONE
    try:
        return Method(value.strip().upper())
    except ValueError:
        return Method.NONE


def has_scheme(url: str) -> bool:
    lower = url.lower()
    return (len(url) > 8 and lower.startswith("https://")) or (len(url) > 7 and lower.startswith("http://"))


def normalize_url(url: str) -> str:
    url = url.strip()
    if url and not has_scheme(url):
        url = "http://" + url
    return url


class RequestError(Exception):
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ClientPool:
    """Free list of httpx clients, so pooled connections are reused across requests."""

    def __init__(self, verify: bool = False):
        self.verify = verify
        self._lock = threading.Lock()
        self._idle = []
        self._closed = False

    def acquire(self) -> httpx.Client:
        with self._lock:
            if self._idle:
                return self._idle.pop()
        # certificates are not checked, https targets are often self-signed
        return httpx.Client(verify=self.verify, follow_redirects=False, trust_env=False)

    def release(self, client: httpx.Client):
        with self._lock:
            if not self._closed:
                self._idle.append(client)
                return
        client.close()

    def close(self):
        with self._lock:
            self._closed = True
            idle, self._idle = self._idle, []
        for c in idle:
            c.close()

    def __len__(self):
        with self._lock:
            return len(self._idle)


default_pool = ClientPool()


@dataclass
class Options:
    url: str = ""
    method: Method = Method.GET
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    content_type: str = ""
    timeout: float = DEFAULT_TIMEOUT

    def add_header(self, name: str, value: str):
        name, value = str(name), str(value)
        self.headers[name] = value
        if not self.content_type and name.lower() == "content-type":
            self.content_type = value.lower()


class Request:
    def __init__(
        self,
        url: str = "",
        method: Method = Method.GET,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
        body: Optional[Union[str, bytes]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        client_pool: Optional[ClientPool] = None,
    ):
        if method is Method.NONE:
            method = Method.GET
        self.opts = Options(url=url, method=method, timeout=timeout)
        for k, v in (headers or {}).items():
            self.opts.add_header(k, v)
        self.opts.params.update(params or {})
        if body is not None:
            self.set_body(body)
        self.client_pool = client_pool if client_pool is not None else default_pool

        self.elapsed = 0.0
        self.status = 0

    # --- mutators exposed to scripts ---

    def set_url(self, url: str):
        url = normalize_url(str(url))
        if url:
            self.opts.url = url

    def set_header(self, name: str, value: str):
        self.opts.add_header(name, value)

    def set_param(self, name: str, value: str):
        self.opts.params[str(name)] = str(value)

    def set_body(self, body: Union[str, bytes]):
        if isinstance(body, (bytes, bytearray)):
            self.opts.body = bytes(body)
        else:
            self.opts.body = str(body).encode("utf-8")

    def set_method(self, method: str):
        m = parse_method(str(method))
        if m is not Method.NONE:
            self.opts.method = m

    def set_timeout(self, ms: int):
        self.opts.timeout = float(ms) / 1000.0

    # --- execution ---

    @property
    def url(self) -> str:
        return self.opts.url

    @property
    def method(self) -> Method:
        return self.opts.method

    def encode_uri(self) -> str:
        return urlencode(self.opts.params)

    def build_url(self) -> str:
        if self.opts.method is Method.GET and self.opts.params:
            sep = "&" if "?" in self.opts.url else "?"
            return f"{self.opts.url}{sep}{self.encode_uri()}"
        return self.opts.url

    def build_body(self) -> Optional[bytes]:
        if self.opts.method is not Method.POST:
            return None
        if self.opts.body is not None:
            return self.opts.body
        if self.opts.content_type == "application/json" and self.opts.params:
            return json.dumps(self.opts.params).encode("utf-8")
        return self.encode_uri().encode("utf-8")

    def do(self) -> bytes:
        if len(self.opts.url) < 7:
            raise RequestError("request URL cannot be empty")
        if self.opts.method not in (Method.GET, Method.POST):
            raise RequestError(f"unsupported method {self.opts.method.value}")

        url = self.build_url()
        body = self.build_body()
        self.status = 0
        client = self.client_pool.acquire()
        t0 = time.perf_counter()
        try:
            rsp = client.request(
                self.opts.method.value,
                url,
                headers=self.opts.headers,
                content=body,
                timeout=self.opts.timeout if self.opts.timeout > 0 else None,
            )
            self.status = rsp.status_code
            return rsp.content
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeEncodeError) as e:
            raise RequestError(f"{self.opts.method.value} {url}: {e}", cause=e) from e
        finally:
            self.elapsed = (time.perf_counter() - t0) * 1000.0
            self.client_pool.release(client)
