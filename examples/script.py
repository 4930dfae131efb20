# examples/script.py
# Hooks for `webbench -s examples/script.py`. Every hook returns True to carry on.
import json

from webbench.script import curl


# called once at startup
def init():
    body, ok = curl("http://localhost:8101/ok")
    print("warmup:", ok, body[:80])
    return True


# called before every request; req can be rewritten here
def request(req):
    req.set_timeout(10000)  # ms
    req.set_header("X-Bench", "webbench")
    return True


# called with the raw response body of every 200 response
def check(body):
    try:
        json.loads(body)
    except ValueError:
        return False
    return True
