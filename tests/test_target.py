from fastapi.testclient import TestClient

from webbench.target import app

client = TestClient(app)


def test_ok_returns_fixed_body():
    r = client.get("/ok")
    assert r.status_code == 200
    assert r.content == b"hello"
    assert client.post("/ok").status_code == 200


def test_status_endpoint():
    r = client.get("/status/503")
    assert r.status_code == 503


def test_echo_query_and_body():
    r = client.get("/echo", params={"a": "1"})
    assert r.json()["query"] == {"a": "1"}
    r = client.post("/echo", content=b"a=1", headers={"Content-Type": "application/x-www-form-urlencoded"})
    body = r.json()
    assert body["method"] == "POST"
    assert body["body"] == "a=1"
    assert body["content_type"] == "application/x-www-form-urlencoded"


def test_slow_endpoint():
    assert client.get("/slow", params={"ms": 1}).content == b"hello"


def test_metrics_endpoint():
    client.get("/ok")
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "target_requests_total" in r.text
