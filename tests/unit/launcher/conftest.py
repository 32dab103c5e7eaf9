from __future__ import annotations

import os
import socket
import stat
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Callable, Iterator

import pytest


class _HealthServer:
    def __init__(self, status_for: Callable[[int], int]):
        self.status_for = status_for
        self.paths: list[str] = []
        self._lock = threading.Lock()

        outer = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:  # noqa: N802
                with outer._lock:
                    outer.paths.append(self.path)
                    status = outer.status_for(len(outer.paths))
                body = b"{}"
                self.send_response(status)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, format, *args) -> None:  # noqa: A002
                pass

        self.httpd = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self.port = self.httpd.server_address[1]
        self.base_url = f"http://127.0.0.1:{self.port}"
        self._thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)

    def start(self) -> "_HealthServer":
        self._thread.start()
        return self

    def stop(self) -> None:
        self.httpd.shutdown()
        self.httpd.server_close()


@pytest.fixture
def health_server() -> Iterator[Callable[..., _HealthServer]]:
    """Factory: health_server(status_for=lambda nth_request: 200)."""
    servers: list[_HealthServer] = []

    def _make(status_for: Callable[[int], int] = lambda _n: 200) -> _HealthServer:
        server = _HealthServer(status_for).start()
        servers.append(server)
        return server

    yield _make

    for server in servers:
        server.stop()


@pytest.fixture
def dead_base_url() -> str:
    """A loopback URL where nothing is listening."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}"


def make_runtime(root: Path, *, interpreter: bool = True, payload: bool = True, script: str = "") -> Path:
    """Lay out jre/bin/java and bin/Suwayomi-Server.jar under root."""
    root.mkdir(parents=True, exist_ok=True)
    if interpreter:
        java = root / "jre" / "bin" / "java"
        java.parent.mkdir(parents=True, exist_ok=True)
        java.write_text(script or "#!/bin/sh\nexit 0\n", encoding="utf-8")
        java.chmod(java.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    if payload:
        jar = root / "bin" / "Suwayomi-Server.jar"
        jar.parent.mkdir(parents=True, exist_ok=True)
        jar.write_bytes(b"PK")
    return root


posix_only = pytest.mark.skipif(os.name == "nt", reason="uses a shell script as the fake java binary")
