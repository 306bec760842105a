"""HTTP server that stores and serves workflow artifacts."""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, BinaryIO, Protocol
from urllib.parse import parse_qs, unquote, urlsplit

_logger = logging.getLogger("actlocal.artifacts")

GZIP_EXTENSION = ".gz__"

_JSON_TYPE = "application/json"
_TEXT_TYPE = "text/plain; charset=utf-8"


class ArtifactFS(Protocol):
    """Storage used by the artifact router."""

    def open_writable(self, name: str) -> Any: ...

    def open_appendable(self, name: str) -> Any: ...

    def read(self, name: str) -> bytes: ...

    def list_dir(self, name: str) -> list[str]: ...

    def walk_files(self, name: str) -> Iterator[str]: ...


def safe_resolve(base_dir: str, rel_path: str) -> str:
    """Join ``rel_path`` to ``base_dir`` without letting it escape the base."""
    cleaned = os.path.normpath(os.path.join(os.sep, rel_path))
    return os.path.normpath(os.path.join(base_dir, cleaned.lstrip(os.sep)))


class LocalFS:
    """Artifact storage on the local filesystem."""

    def open_writable(self, name: str) -> BinaryIO:
        """Open ``name`` for writing, truncating it and creating parents."""
        os.makedirs(os.path.dirname(name) or ".", exist_ok=True)
        return open(name, "wb")  # noqa: SIM115

    def open_appendable(self, name: str) -> BinaryIO:
        """Open ``name`` for writing at its end, creating it if needed."""
        os.makedirs(os.path.dirname(name) or ".", exist_ok=True)
        return open(name, "ab")  # noqa: SIM115

    def read(self, name: str) -> bytes:
        """Return the contents of ``name``."""
        return Path(name).read_bytes()

    def list_dir(self, name: str) -> list[str]:
        """Return the entry names of directory ``name`` in sorted order."""
        return sorted(os.listdir(name))

    def walk_files(self, name: str) -> Iterator[str]:
        """Yield every file under ``name`` in lexical order.

        If ``name`` is itself a file it is the only one yielded.
        """
        if not os.path.lexists(name):
            raise FileNotFoundError(name)
        if not os.path.isdir(name):
            yield name
            return
        with os.scandir(name) as entries:
            children = sorted(entries, key=lambda entry: entry.name)
        for child in children:
            path = os.path.join(name, child.name)
            if child.is_dir():
                yield from self.walk_files(path)
            else:
                yield path


@dataclass
class Response:
    """What the router answers to a request."""

    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.body)


@dataclass
class _Request:
    method: str
    path: str
    query: dict[str, list[str]]
    headers: dict[str, str]
    host: str
    body: bytes | None

    def query_value(self, name: str) -> str:
        return self.query.get(name, [""])[0]


def _json_response(payload: Any) -> Response:
    return Response(200, json.dumps(payload).encode("utf-8"), {"Content-Type": _JSON_TYPE})


def _text_response(status: int, text: str) -> Response:
    return Response(status, text.encode("utf-8"), {"Content-Type": _TEXT_TYPE})


_WORKFLOW_ARTIFACTS = re.compile(r"/_apis/pipelines/workflows/(?P<run_id>[^/]+)/artifacts")


class ArtifactRouter:
    """Routes artifact upload and download requests to a storage backend."""

    def __init__(self, base_dir: str, fs: ArtifactFS | None = None) -> None:
        self.base_dir = base_dir
        self.fs: ArtifactFS = fs if fs is not None else LocalFS()
        self._routes: list[tuple[str, re.Pattern, Callable[..., Response]]] = [
            ("POST", _WORKFLOW_ARTIFACTS, self._prepare_upload),
            ("PUT", re.compile(r"/upload/(?P<run_id>[^/]+)"), self._upload),
            ("PATCH", _WORKFLOW_ARTIFACTS, self._finalize_upload),
            ("GET", _WORKFLOW_ARTIFACTS, self._list_artifacts),
            ("GET", re.compile(r"/download/(?P<container>[^/]+)"), self._list_container),
            ("GET", re.compile(r"/artifact/(?P<path>.*)"), self._download),
        ]

    def handle(
        self,
        method: str,
        url: str,
        headers: Any = None,
        body: bytes | None = None,
    ) -> Response:
        """Answer one request; ``url`` may be a full URL or just a path."""
        parts = urlsplit(url)
        header_map = {str(key).lower(): value for key, value in (headers or {}).items()}
        request = _Request(
            method=method.upper(),
            path=unquote(parts.path),
            query=parse_qs(parts.query, keep_blank_values=True),
            headers=header_map,
            host=parts.netloc or header_map.get("host", ""),
            body=body,
        )
        path_matched = False
        for route_method, pattern, action in self._routes:
            match = pattern.fullmatch(request.path)
            if match is None:
                continue
            path_matched = True
            if route_method != request.method:
                continue
            try:
                return action(request, **match.groupdict())
            except Exception as exc:  # noqa: BLE001 - reported as a server error
                _logger.error("%s %s: %s", request.method, request.path, exc)
                return _text_response(500, f"{exc}\n")
        if path_matched:
            return _text_response(405, "Method Not Allowed\n")
        return _text_response(404, "404 page not found\n")

    def _prepare_upload(self, request: _Request, run_id: str) -> Response:
        return _json_response(
            {"fileContainerResourceUrl": f"http://{request.host}/upload/{run_id}"}
        )

    def _upload(self, request: _Request, run_id: str) -> Response:
        item_path = request.query_value("itemPath")
        if request.headers.get("content-encoding") == "gzip":
            item_path += GZIP_EXTENSION

        safe_run_path = safe_resolve(self.base_dir, run_id)
        safe_path = safe_resolve(safe_run_path, item_path)

        if request.body is None:
            raise ValueError("No body given")

        content_range = request.headers.get("content-range", "")
        if content_range and not content_range.startswith("bytes 0-"):
            target = self.fs.open_appendable(safe_path)
        else:
            target = self.fs.open_writable(safe_path)
        with target:
            target.write(request.body)
        return _json_response({"message": "success"})

    def _finalize_upload(self, request: _Request, run_id: str) -> Response:
        return _json_response({"message": "success"})

    def _list_artifacts(self, request: _Request, run_id: str) -> Response:
        safe_path = safe_resolve(self.base_dir, run_id)
        entries = [
            {
                "name": name,
                "fileContainerResourceUrl": f"http://{request.host}/download/{run_id}",
            }
            for name in self.fs.list_dir(safe_path)
        ]
        return _json_response({"count": len(entries), "value": entries or None})

    def _list_container(self, request: _Request, container: str) -> Response:
        item_path = request.query_value("itemPath")
        safe_path = safe_resolve(self.base_dir, os.path.join(container, item_path))

        files = []
        for path in list(self.fs.walk_files(safe_path)):
            rel = os.path.relpath(path, safe_path).removesuffix(GZIP_EXTENSION)
            files.append(
                {
                    "path": os.path.normpath(os.path.join(item_path, rel)),
                    "itemType": "file",
                    "contentLocation": (
                        f"http://{request.host}/artifact/{container}/{item_path}/{rel}"
                    ),
                }
            )
        return _json_response({"value": files or None})

    def _download(self, request: _Request, path: str) -> Response:
        safe_path = safe_resolve(self.base_dir, path)
        headers = {"Content-Type": "application/octet-stream"}
        try:
            data = self.fs.read(safe_path)
        except OSError:
            data = self.fs.read(safe_path + GZIP_EXTENSION)
            headers["Content-Encoding"] = "gzip"
        return Response(200, data, headers)


def _read_body(rfile: BinaryIO, headers: Any) -> bytes:
    if (headers.get("Transfer-Encoding") or "").lower() == "chunked":
        chunks = []
        while True:
            line = rfile.readline()
            size = int(line.split(b";", 1)[0].strip() or b"0", 16)
            if size == 0:
                while rfile.readline() not in (b"\r\n", b"\n", b""):
                    pass
                break
            chunks.append(rfile.read(size))
            rfile.readline()
        return b"".join(chunks)
    length = int(headers.get("Content-Length") or 0)
    return rfile.read(length) if length > 0 else b""


def _make_request_handler(router: ArtifactRouter) -> type[BaseHTTPRequestHandler]:
    class _RequestHandler(BaseHTTPRequestHandler):
        server_version = "actlocal-artifacts"

        def do_GET(self) -> None:  # noqa: N802
            self._dispatch()

        do_POST = do_GET  # noqa: N815
        do_PUT = do_GET  # noqa: N815
        do_PATCH = do_GET  # noqa: N815

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            _logger.debug(format, *args)

        def _dispatch(self) -> None:
            body = _read_body(self.rfile, self.headers)
            response = router.handle(self.command, self.path, self.headers, body)
            self.send_response(response.status)
            for name, value in response.headers.items():
                self.send_header(name, value)
            self.send_header("Content-Length", str(len(response.body)))
            self.end_headers()
            self.wfile.write(response.body)

    return _RequestHandler


def serve(artifact_path: str, addr: str, port: str | int) -> Callable[[], None]:
    """Start the artifact server in the background; return a function that stops it.

    With an empty ``artifact_path`` no server is started.
    """
    if not artifact_path:
        return lambda: None

    _logger.debug("Artifacts base path '%s'", artifact_path)
    router = ArtifactRouter(artifact_path, LocalFS())
    server = ThreadingHTTPServer((addr, int(port)), _make_request_handler(router))
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, name="artifacts", daemon=True)
    thread.start()
    _logger.info("Start server on http://%s:%s", addr, port)

    lock = threading.Lock()
    stopped = False

    def cancel() -> None:
        nonlocal stopped
        with lock:
            if stopped:
                return
            stopped = True
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)

    return cancel