#!/usr/bin/env python3
"""
ripit.py — repeat a Burp-style raw HTTP request N times concurrently
"""
# Reads a plain-text request transcript (as exported by an intercepting proxy),
# then fires the same request --request-number times at the SAME instant and
# prints every response. Meant for race-condition probing.
#
# Features:
# - Burp transcript parser (request line, headers, flattened body)
# - URL synthesized as https://{Host}{path}
# - Barrier so all threads fire together
# - Decode Content-Encoding: gzip/deflate/br
# - TLS verification always OFF (self-signed / mismatched targets)
# - One printer thread: reports never interleave
# - Colorized console (colorama)

import argparse
import enum
import queue
import re
import sys
import threading
import zlib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, TextIO, Tuple
from urllib.parse import urlsplit, urlunsplit

import brotli
import requests
import urllib3
from colorama import init as colorama_init, Fore, Style

MAX_LINE_LENGTH = 100
DIVIDER = "-" * 103

# Framing is computed by the transport; Host is already part of the URL.
MANAGED_HEADERS = {"content-length", "transfer-encoding", "trailer", "host"}

_TOKEN_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


# ==========
# Errors
# ==========

class RipitError(Exception):
    """Base class for everything ripit reports instead of crashing."""


class ParseError(RipitError):
    """The request transcript could not be opened or read."""


class RequestBuildError(RipitError):
    """The parsed method/URL cannot form a valid request."""


class TransportError(RipitError):
    """DNS, connect, TLS or I/O failure while talking to the target."""


class DecompressionError(RipitError):
    """The response body does not match its Content-Encoding."""


class FailurePolicy(enum.Enum):
    CONTINUE = "continue"
    ABORT = "abort"


# ==================
# Models & parsing
# ==================

@dataclass(frozen=True)
class RequestDescriptor:
    """Parsed elements of a Burp-style raw HTTP request. Shared read-only by all threads."""
    method: str
    url: str
    headers: Mapping[str, str]
    body: bytes

    def __post_init__(self):
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))


def _chomp(line: bytes) -> bytes:
    if line.endswith(b"\n"):
        line = line[:-1]
    if line.endswith(b"\r"):
        line = line[:-1]
    return line


def parse_request_file(path: str, flatten_body: bool = True) -> RequestDescriptor:
    """
    Parse a raw HTTP request file (Burp style).
    - Request line: first line containing " HTTP/"; anything before it is ignored
    - Headers: "Key: value" until the first empty line, last duplicate wins
    - Body: every following line; with flatten_body the line terminators are
      dropped, so "foo\\nbar" becomes b"foobar"
    - URL: https://{Host}{path} when a Host header exists, else the raw path token
    """
    method, target = "", ""
    headers: Dict[str, str] = {}
    body_parts: List[bytes] = []
    seen_request_line = False
    in_body = False

    try:
        with open(path, "rb") as f:
            for raw_line in f:
                if in_body:
                    body_parts.append(_chomp(raw_line) if flatten_body else raw_line)
                    continue

                line = _chomp(raw_line).decode("utf-8", errors="replace")
                if not seen_request_line:
                    if " HTTP/" in line:
                        parts = line.split(" ")
                        method, target = parts[0], parts[1]
                        seen_request_line = True
                    continue

                if line == "":
                    in_body = True
                    continue
                parts = line.split(": ", 1)
                if len(parts) == 2:
                    headers[parts[0]] = parts[1]
    except OSError as ex:
        raise ParseError(f"cannot read request file {path!r}: {ex}") from ex

    url = target
    if "Host" in headers:
        url = f"https://{headers['Host']}{origin_form(target)}"

    return RequestDescriptor(method=method, url=url, headers=headers, body=b"".join(body_parts))


def origin_form(target: str) -> str:
    """Reduce an absolute-form target (http://host/p?q) to its path and query."""
    if not target.lower().startswith(("http://", "https://")):
        return target
    parts = urlsplit(target)
    return urlunsplit(("", "", parts.path or "/", parts.query, ""))


def sanitize_headers(h: Mapping[str, str]) -> Dict[str, str]:
    """Drop hop-by-hop/managed headers; the session sets them correctly."""
    return {k: v for k, v in h.items() if k.lower() not in MANAGED_HEADERS}


def wrap_text(text: str, max_length: int = MAX_LINE_LENGTH) -> str:
    """Hard-wrap by character count (not word aware)."""
    if len(text) <= max_length:
        return text
    return "\n".join(text[i:i + max_length] for i in range(0, len(text), max_length))


# ==========
# Reports
# ==========

@dataclass
class ResponseReport:
    status_code: int
    reason: str
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: str = ""

    @property
    def status(self) -> str:
        return f"{self.status_code} {self.reason}".strip()

    def render(self, color: bool = False) -> str:
        status = self.status
        if color:
            tint = Fore.GREEN if 200 <= self.status_code < 400 else Fore.YELLOW
            status = f"{tint}{status}{Style.RESET_ALL}"

        lines = [DIVIDER, f"Response Status: {status}", "", "Response Headers:"]
        lines.extend(wrap_text(f"{k}: {v}") for k, v in self.headers)
        lines += ["", "Response Body:", wrap_text(self.body), DIVIDER]
        return "\n".join(lines)


@dataclass
class ExecutionResult:
    index: int
    report: Optional[ResponseReport] = None
    error: Optional[RipitError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# =========================
# Sending
# =========================

def new_session() -> requests.Session:
    s = requests.Session()
    s.verify = False
    s.trust_env = False
    return s


def build_request(session: requests.Session, descriptor: RequestDescriptor) -> requests.PreparedRequest:
    method = descriptor.method or "GET"
    if not _TOKEN_RE.match(method):
        raise RequestBuildError(f"invalid HTTP method: {method!r}")

    req = requests.Request(
        method,
        descriptor.url,
        headers=sanitize_headers(descriptor.headers),
        data=descriptor.body or None,
    )
    try:
        return session.prepare_request(req)
    except (requests.exceptions.MissingSchema,
            requests.exceptions.InvalidSchema,
            requests.exceptions.InvalidURL) as ex:
        raise RequestBuildError(f"invalid URL {descriptor.url!r}: {ex}") from ex
    except ValueError as ex:
        # InvalidHeader and friends
        raise RequestBuildError(f"invalid request: {ex}") from ex


def decode_body(body: bytes, content_encoding: str) -> bytes:
    enc = (content_encoding or "").strip().lower()
    if not body:
        return body

    try:
        if enc == "gzip":
            return zlib.decompress(body, zlib.MAX_WBITS | 16)
        if enc == "br":
            return brotli.decompress(body)
    except (zlib.error, brotli.error) as ex:
        raise DecompressionError(f"bad {enc} body: {ex}") from ex

    if enc == "deflate":
        for wbits in (zlib.MAX_WBITS, -zlib.MAX_WBITS):
            try:
                return zlib.decompress(body, wbits)
            except zlib.error:
                continue
        raise DecompressionError("bad deflate body")

    return body


def execute(descriptor: RequestDescriptor) -> ResponseReport:
    """Send the request once and build its report. Raises RipitError subclasses."""
    with new_session() as s:
        prepared = build_request(s, descriptor)
        try:
            resp = s.send(prepared, stream=True)
        except (requests.RequestException, ValueError) as ex:
            # UnicodeEncodeError for header values outside latin-1
            raise TransportError(f"{descriptor.method} {descriptor.url}: {ex}") from ex

        with resp:
            raw_headers = resp.raw.headers
            try:
                raw_body = resp.raw.read(decode_content=False)
            except (urllib3.exceptions.HTTPError, OSError) as ex:
                raise TransportError(f"reading body from {descriptor.url}: {ex}") from ex

            body = decode_body(raw_body, raw_headers.get("Content-Encoding", ""))
            return ResponseReport(
                status_code=resp.status_code,
                reason=resp.reason or "",
                headers=[(k, "".join(raw_headers.getlist(k))) for k in raw_headers],
                body=body.decode("utf-8", errors="replace"),
            )


# ==========
# Output
# ==========

class ReportPrinter(threading.Thread):
    """Single consumer of finished executions; the only writer to the stream."""

    def __init__(self, stream: TextIO, policy: FailurePolicy, color: bool = False):
        super().__init__(name="ripit-printer", daemon=True)
        self.results: "queue.Queue[Optional[ExecutionResult]]" = queue.Queue()
        self.stream = stream
        self.policy = policy
        self.color = color
        self.aborted = False
        self.suppressed = 0

    def _paint(self, tint: str, text: str) -> str:
        return f"{tint}{text}{Style.RESET_ALL}" if self.color else text

    def run(self):
        while True:
            result = self.results.get()
            if result is None:
                break
            if self.aborted:
                self.suppressed += 1
                continue
            if result.ok:
                print(result.report.render(color=self.color), file=self.stream, flush=True)
                continue
            print(self._paint(Fore.RED, f"[!] Execution #{result.index} failed: {result.error}"),
                  file=self.stream, flush=True)
            if self.policy is FailurePolicy.ABORT:
                self.aborted = True

    def close(self):
        self.results.put(None)
        self.join()
        if self.suppressed:
            print(self._paint(Fore.RED, f"[!] Aborted: {self.suppressed} later result(s) not shown"),
                  file=self.stream, flush=True)


# ==========
# Dispatch
# ==========

def dispatch(descriptor: RequestDescriptor, repeat: int,
             policy: FailurePolicy = FailurePolicy.CONTINUE,
             stream: Optional[TextIO] = None, color: bool = False) -> List[ExecutionResult]:
    """Fire `repeat` executions at the same instant and wait for all of them."""
    if repeat < 1:
        raise ValueError(f"repeat count must be >= 1, got {repeat}")

    printer = ReportPrinter(stream or sys.stdout, policy, color=color)
    printer.start()
    start_barrier = threading.Barrier(repeat)

    def run_with_barrier(index: int) -> ExecutionResult:
        start_barrier.wait()
        try:
            result = ExecutionResult(index, report=execute(descriptor))
        except RipitError as ex:
            result = ExecutionResult(index, error=ex)
        printer.results.put(result)
        return result

    try:
        with ThreadPoolExecutor(max_workers=repeat) as ex:
            futures = [ex.submit(run_with_barrier, i) for i in range(1, repeat + 1)]
            results = [fut.result() for fut in futures]
    finally:
        printer.close()
    return results


# ==========
# CLI
# ==========

USAGE_EPILOG = """\
Usage:
    ripit --request-file request.txt
    ripit --request-file request.txt --request-number 5

Information:
    --request-file   (location of the Burp plain text request file)
    --request-number (number of requests; use it for race conditions)
"""


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ripit",
        description="Ripit repeats HTTP requests saved from Burp Suite, concurrently.",
        epilog=USAGE_EPILOG,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    p.add_argument("--request-file", default="", help="Path to the raw HTTP request file.")
    p.add_argument("--request-number", type=int, default=1,
                   help="Number of concurrent HTTP requests to send (default: 1).")
    p.add_argument("--fail-fast", action="store_true",
                   help="Stop showing results after the first failed execution; exit 1.")
    p.add_argument("--keep-body-newlines", action="store_true",
                   help="Send the body verbatim instead of joining its lines.")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.request_file:
        parser.print_help()
        return 0
    if args.request_number < 1:
        parser.error("--request-number must be >= 1")

    color = sys.stdout.isatty()
    if color:
        colorama_init(autoreset=True)

    def say(tint: str, text: str):
        print(f"{tint}{text}{Style.RESET_ALL}" if color else text)

    # TLS verification is always off
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    try:
        descriptor = parse_request_file(args.request_file, flatten_body=not args.keep_body_newlines)
    except ParseError as ex:
        say(Fore.RED, f"Error parsing request file: {ex}")
        return 1

    policy = FailurePolicy.ABORT if args.fail_fast else FailurePolicy.CONTINUE
    say(Fore.CYAN, f"[i] Target: {descriptor.method or 'GET'} {descriptor.url}")
    say(Fore.CYAN, f"[i] Requests: {args.request_number} | Policy: {policy.value} | TLS verify: OFF")
    say(Fore.MAGENTA, f"[*] Arming {args.request_number} thread(s) to fire at the SAME instant ...")

    results = dispatch(descriptor, args.request_number, policy=policy, color=color)

    failed = sum(1 for r in results if not r.ok)
    if failed:
        say(Fore.RED, f"\n[!] {failed}/{len(results)} execution(s) failed.")
        return 1
    say(Fore.GREEN, "\nDone.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
