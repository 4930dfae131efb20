# webbench/script.py
# User scripts are plain Python files defining init(), request(req) and check(body).
import logging
import runpy
import threading
from typing import Callable, Dict, Optional, Tuple

from webbench.request import Request, RequestError, normalize_url, parse_method

logger = logging.getLogger(__name__)

HOOKS = ("init", "request", "check")

# one script namespace is shared by every worker, so all hook calls are serialized
SCRIPT_LOCK = threading.Lock()


class ScriptError(Exception):
    pass


def curl(url: str, method: str = "GET", headers: Optional[Dict[str, str]] = None,
         params: Optional[Dict[str, str]] = None) -> Tuple[str, bool]:
    """Helper for scripts: fire one request, return (body text, ok)."""
    req = Request(
        url=normalize_url(url),
        method=parse_method(method),
        headers=headers,
        params=params,
    )
    try:
        body = req.do()
    except RequestError as e:
        logger.error("curl %s failed: %s", url, e)
        return "", False
    return body.decode("utf-8", errors="replace"), True


class Script:
    def __init__(self, path: str, namespace: Dict[str, object]):
        self.path = path
        self.namespace = namespace
        self._request: Callable = namespace["request"]
        self._check: Callable = namespace["check"]

    @classmethod
    def load(cls, path: str) -> "Script":
        try:
            namespace = runpy.run_path(path, run_name="__webbench_script__")
        except OSError as e:
            raise ScriptError(f"cannot read script {path}: {e}") from e
        except (Exception, SystemExit) as e:
            raise ScriptError(f"error loading script {path}: {e!r}") from e

        missing = [h for h in HOOKS if not callable(namespace.get(h))]
        if missing:
            raise ScriptError(f"script {path} does not define {', '.join(missing)}()")

        with SCRIPT_LOCK:
            try:
                ok = namespace["init"]()
            except (Exception, SystemExit) as e:
                raise ScriptError(f"script init() raised {e!r}") from e
        if not ok:
            raise ScriptError("call script init() function return false")

        logger.info("loaded script %s", path)
        return cls(path, namespace)

    def _call(self, name: str, fn: Callable, arg) -> bool:
        with SCRIPT_LOCK:
            try:
                return bool(fn(arg))
            except (Exception, SystemExit) as e:
                logger.error("script %s() raised %r", name, e)
                return False

    def run_request(self, req: Request) -> bool:
        return self._call("request", self._request, req)

    def run_check(self, body: bytes) -> bool:
        return self._call("check", self._check, body)
