import gzip
import json
import socket
import ssl
import threading
import zlib
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import brotli
import pytest
import trustme

PLAINTEXT = b"race me if you can"


class MockTarget(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, addr):
        super().__init__(addr, MockHandler)
        self.lock = threading.Lock()
        self.hits = 0
        self.paths = []

    @property
    def base_url(self):
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"


class MockHandler(BaseHTTPRequestHandler):
    def log_message(self, format, *args):
        pass

    def setup(self):
        if isinstance(self.request, ssl.SSLSocket):
            self.request.do_handshake()
        super().setup()

    def _reply(self, body, headers=()):
        self.send_response(200)
        for k, v in headers:
            self.send_header(k, v)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def _handle(self):
        with self.server.lock:
            self.server.hits += 1
            self.server.paths.append(self.path)

        length = int(self.headers.get("Content-Length") or 0)
        received = self.rfile.read(length) if length else b""

        if self.path == "/gzip":
            self._reply(gzip.compress(PLAINTEXT), [("Content-Encoding", "gzip")])
        elif self.path == "/deflate":
            self._reply(zlib.compress(PLAINTEXT), [("Content-Encoding", "deflate")])
        elif self.path == "/br":
            self._reply(brotli.compress(PLAINTEXT), [("Content-Encoding", "br")])
        elif self.path == "/broken-gzip":
            self._reply(b"definitely not gzip", [("Content-Encoding", "gzip")])
        elif self.path == "/old":
            self.send_response(302)
            self.send_header("Location", "/new")
            self.send_header("Content-Length", "0")
            self.end_headers()
        elif self.path == "/new":
            self._reply(b"final")
        elif self.path == "/multi":
            self._reply(b"ok", [("X-Multi", "a"), ("X-Multi", "b")])
        elif self.path == "/echo":
            payload = {
                "method": self.command,
                "headers": dict(self.headers.items()),
                "body": received.decode("utf-8", errors="replace"),
            }
            self._reply(json.dumps(payload, sort_keys=True).encode(), [("Content-Type", "application/json")])
        else:
            self._reply(b"hello", [("Content-Type", "text/plain")])

    do_GET = do_POST = do_PUT = do_HEAD = _handle


@pytest.fixture
def target():
    server = MockTarget(("127.0.0.1", 0))
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def tls_target():
    """Same mock target behind TLS with a certificate no client trusts."""
    ca = trustme.CA()
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ca.issue_cert("127.0.0.1").configure_cert(ctx)

    server = MockTarget(("127.0.0.1", 0))
    server.socket = ctx.wrap_socket(server.socket, server_side=True, do_handshake_on_connect=False)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def transcript(tmp_path):
    """Write a request transcript and return its path."""
    def _write(text, name="request.txt"):
        path = tmp_path / name
        path.write_bytes(text.encode("utf-8") if isinstance(text, str) else text)
        return str(path)
    return _write


@pytest.fixture
def closed_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
