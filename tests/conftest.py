import socket

import pytest

from webbench.log import setup_logging
from webbench.target import serve_in_thread


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture(scope="session")
def target():
    """Base URL of a demo target running on a background uvicorn thread."""
    port = free_port()
    server = serve_in_thread(port)
    yield f"http://127.0.0.1:{port}"
    server.should_exit = True


@pytest.fixture
def dead_url():
    # nothing listens on a port we just released: connection refused
    return f"http://127.0.0.1:{free_port()}/"


@pytest.fixture(autouse=True)
def quiet_logs():
    setup_logging(None)
    yield
    setup_logging(None)


@pytest.fixture
def unused_port():
    return free_port()
