"""HTTP cache server speaking the actions artifact cache protocol."""

from __future__ import annotations

import io
import json
import logging
import os
import re
import shutil
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, BinaryIO
from urllib.parse import parse_qs, urlsplit

from .cache_model import Cache, Request
from .cache_storage import Storage
from .outbound_ip import get_outbound_ip

URL_BASE = "/_apis/artifactcache"

_KEEP_USED = 30 * 24 * 3600
_KEEP_UNUSED = 7 * 24 * 3600
_KEEP_TEMP = 5 * 60
_GC_INTERVAL = 3600

_INT_RE = re.compile(r"[+-]?\d+")
_JSON_TYPE = "application/json; charset=utf-8"
_COLUMNS = "id, key, version, key_version_hash, size, complete, used_at, created_at"


def _parse_int(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r}")
    return int(text)


def parse_content_range(value: str) -> tuple[int, int]:
    """Parse a ``bytes START-STOP/*`` header into ``(start, stop)``."""
    spec = value.removeprefix("bytes ").split("/", 1)[0]
    first, _, second = spec.partition("-")
    try:
        return _parse_int(first), _parse_int(second)
    except ValueError as exc:
        raise ValueError(f"parse {spec!r}: {exc}") from exc


class _Failure(Exception):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


@dataclass
class _Incoming:
    method: str
    uri: str
    path: str
    query: dict[str, list[str]]
    headers: Any
    body: bytes

    def query_value(self, name: str) -> str:
        return self.query.get(name, [""])[0]


@dataclass
class _Reply:
    status: int
    payload: Any = None
    raw: bytes | None = None
    stream: BinaryIO | None = None
    content_type: str = _JSON_TYPE

    def body(self) -> bytes:
        if self.raw is not None:
            return self.raw
        if self.payload is None:
            return b"{}"
        return json.dumps(self.payload).encode("utf-8")


@dataclass
class _Route:
    method: str
    pattern: re.Pattern
    action: str
    params: dict = field(default_factory=dict)


_ROUTES = [
    _Route("GET", re.compile(rf"{URL_BASE}/cache"), "_find"),
    _Route("POST", re.compile(rf"{URL_BASE}/caches"), "_reserve"),
    _Route("PATCH", re.compile(rf"{URL_BASE}/caches/(?P<id>[^/]+)"), "_upload"),
    _Route("POST", re.compile(rf"{URL_BASE}/caches/(?P<id>[^/]+)"), "_commit"),
    _Route("GET", re.compile(rf"{URL_BASE}/artifacts/(?P<id>[^/]+)"), "_get"),
    _Route("POST", re.compile(rf"{URL_BASE}/clean"), "_clean"),
]


def _discard_logger() -> logging.Logger:
    logger = logging.getLogger("actlocal.artifactcache.discard")
    logger.propagate = False
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return logger


def _request_from_payload(body: bytes) -> Request:
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValueError(str(exc)) from exc
    if not isinstance(data, dict):
        raise ValueError("request body must be a JSON object")
    key = data.get("key") or ""
    version = data.get("version") or ""
    size = data.get("cacheSize") or 0
    if not isinstance(key, str) or not isinstance(version, str):
        raise ValueError("key and version must be strings")
    if not isinstance(size, int) or isinstance(size, bool):
        raise ValueError("cacheSize must be an integer")
    return Request(key=key, version=version, size=size)


def _row_to_cache(row: tuple) -> Cache:
    return Cache(
        id=row[0],
        key=row[1],
        version=row[2],
        key_version_hash=row[3],
        size=row[4],
        complete=bool(row[5]),
        used_at=row[6],
        created_at=row[7],
    )


def _open_db(path: str) -> sqlite3.Connection:
    db = sqlite3.connect(path, timeout=5, check_same_thread=False, isolation_level=None)
    db.executescript(
        """
        CREATE TABLE IF NOT EXISTS caches (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            key TEXT NOT NULL,
            version TEXT NOT NULL,
            key_version_hash TEXT NOT NULL UNIQUE,
            size INTEGER NOT NULL,
            complete INTEGER NOT NULL,
            used_at INTEGER NOT NULL,
            created_at INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS caches_key ON caches (key);
        CREATE INDEX IF NOT EXISTS caches_version ON caches (version);
        CREATE INDEX IF NOT EXISTS caches_used_at ON caches (used_at);
        CREATE INDEX IF NOT EXISTS caches_created_at ON caches (created_at);
        """
    )
    return db


def _read_body(rfile: BinaryIO, headers: Any) -> bytes:
    if headers.get("Transfer-Encoding", "").lower() == "chunked":
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


class CacheHandler:
    """A running cache server backed by a SQLite index and file storage."""

    def __init__(self, directory: str, outbound_ip: str, logger: logging.Logger) -> None:
        self._logger = logger
        self._lock = threading.Lock()
        self._db: sqlite3.Connection | None = _open_db(os.path.join(directory, "cache.db"))
        self._storage = Storage(os.path.join(directory, "cache"))
        self._outbound_ip = outbound_ip
        self._gc_lock = threading.Lock()
        self._gc_at = 0.0
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._port = 0

    def __enter__(self) -> CacheHandler:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def external_url(self) -> str:
        """Base URL at which clients reach this server."""
        return f"http://{self._outbound_ip}:{self._port}"

    def close(self) -> None:
        """Stop serving and close the index; safe to call more than once."""
        error: BaseException | None = None
        server, self._server = self._server, None
        if server is not None:
            try:
                server.shutdown()
                server.server_close()
            except OSError as exc:
                error = exc
        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout=5)
        with self._lock:
            db, self._db = self._db, None
        if db is not None:
            try:
                db.close()
            except sqlite3.Error as exc:
                error = exc
        if error is not None:
            raise error

    def _listen(self, port: int) -> None:
        server = ThreadingHTTPServer(("", port), _make_request_handler(self))
        server.daemon_threads = True
        self._port = server.server_address[1]
        self._server = server
        self._thread = threading.Thread(
            target=server.serve_forever, name="artifactcache", daemon=True
        )
        self._thread.start()

    # database access

    def _query(self, sql: str, args: tuple = ()) -> list[tuple]:
        with self._lock:
            if self._db is None:
                raise RuntimeError("cache handler is closed")
            return self._db.execute(sql, args).fetchall()

    def _execute(self, sql: str, args: tuple = ()) -> int:
        with self._lock:
            if self._db is None:
                raise RuntimeError("cache handler is closed")
            return self._db.execute(sql, args).lastrowid

    def _db_get(self, cache_id: int) -> Cache | None:
        rows = self._query(f"SELECT {_COLUMNS} FROM caches WHERE id = ?", (cache_id,))
        return _row_to_cache(rows[0]) if rows else None

    def _db_find_by_hash(self, key_version_hash: str) -> Cache | None:
        rows = self._query(
            f"SELECT {_COLUMNS} FROM caches WHERE key_version_hash = ?", (key_version_hash,)
        )
        return _row_to_cache(rows[0]) if rows else None

    def _db_from_key(self, prefix: str, version: str) -> Iterator[Cache]:
        rows = self._query(
            f"SELECT {_COLUMNS} FROM caches WHERE key >= ? AND version = ? ORDER BY key, id",
            (prefix, version),
        )
        return (_row_to_cache(row) for row in rows)

    def _db_older(self, column: str, threshold: int) -> list[Cache]:
        if column not in ("used_at", "created_at"):
            raise ValueError(f"unknown column {column!r}")
        rows = self._query(f"SELECT {_COLUMNS} FROM caches WHERE {column} < ?", (threshold,))
        return [_row_to_cache(row) for row in rows]

    def _db_insert(self, cache: Cache) -> int:
        return self._execute(
            "INSERT INTO caches (key, version, key_version_hash, size, complete, used_at,"
            " created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                cache.key,
                cache.version,
                cache.key_version_hash,
                cache.size,
                int(cache.complete),
                cache.used_at,
                cache.created_at,
            ),
        )

    def _db_update(self, cache: Cache) -> None:
        self._execute(
            "UPDATE caches SET key = ?, version = ?, key_version_hash = ?, size = ?,"
            " complete = ?, used_at = ?, created_at = ? WHERE id = ?",
            (
                cache.key,
                cache.version,
                cache.key_version_hash,
                cache.size,
                int(cache.complete),
                cache.used_at,
                cache.created_at,
                cache.id,
            ),
        )

    def _db_delete(self, cache_id: int) -> None:
        self._execute("DELETE FROM caches WHERE id = ?", (cache_id,))

    # request handling

    def _handle(self, request: _Incoming) -> _Reply:
        self._logger.debug("%s %s", request.method, request.uri)
        try:
            reply = self._route(request)
        except _Failure as failure:
            reply = self._error_reply(request, failure.status, str(failure))
        except Exception as exc:  # noqa: BLE001 - reported to the client as 500
            reply = self._error_reply(request, 500, str(exc))
        threading.Thread(target=self._gc_cache, daemon=True).start()
        return reply

    def _error_reply(self, request: _Incoming, status: int, message: str) -> _Reply:
        self._logger.error("%s %s: %s", request.method, request.uri, message)
        return _Reply(status, {"error": message})

    def _route(self, request: _Incoming) -> _Reply:
        path_matched = False
        for route in _ROUTES:
            match = route.pattern.fullmatch(request.path)
            if match is None:
                continue
            path_matched = True
            if route.method == request.method:
                action: Callable[[_Incoming, dict], _Reply] = getattr(self, route.action)
                return action(request, match.groupdict())
        if path_matched:
            return _Reply(405, raw=b"Method Not Allowed\n", content_type="text/plain; charset=utf-8")
        return _Reply(404, raw=b"404 page not found\n", content_type="text/plain; charset=utf-8")

    @staticmethod
    def _parse_id(text: str) -> int:
        try:
            return _parse_int(text)
        except ValueError as exc:
            raise _Failure(400, f"parse id {text!r}: {exc}") from exc

    def _reserved(self, cache_id: int) -> Cache:
        cache = self._db_get(cache_id)
        if cache is None:
            raise _Failure(400, f"cache {cache_id}: not reserved")
        if cache.complete:
            raise _Failure(400, f"cache {cache.id} {json.dumps(cache.key)}: already complete")
        return cache

    def _find(self, request: _Incoming, params: dict) -> _Reply:
        keys = [key.lower() for key in request.query_value("keys").split(",")]
        version = request.query_value("version")
        cache = self._find_cache(keys, version)
        if cache is None:
            return _Reply(204)
        if not self._storage.exist(cache.id):
            self._db_delete(cache.id)
            return _Reply(204)
        return _Reply(
            200,
            {
                "result": "hit",
                "archiveLocation": f"{self.external_url()}{URL_BASE}/artifacts/{cache.id}",
                "cacheKey": cache.key,
            },
        )

    def _reserve(self, request: _Incoming, params: dict) -> _Reply:
        try:
            api = _request_from_payload(request.body)
        except ValueError as exc:
            raise _Failure(400, str(exc)) from exc
        api.key = api.key.lower()

        cache = api.to_cache()
        cache.fill_key_version_hash()
        if self._db_find_by_hash(cache.key_version_hash) is not None:
            raise _Failure(400, "already exist")

        now = int(time.time())
        cache.created_at = now
        cache.used_at = now
        try:
            cache.id = self._db_insert(cache)
        except sqlite3.IntegrityError as exc:
            raise _Failure(400, "already exist") from exc
        return _Reply(200, {"cacheId": cache.id})

    def _upload(self, request: _Incoming, params: dict) -> _Reply:
        cache_id = self._parse_id(params["id"])
        cache = self._reserved(cache_id)
        try:
            start, _ = parse_content_range(request.headers.get("Content-Range", ""))
        except ValueError as exc:
            raise _Failure(400, str(exc)) from exc
        self._storage.write(cache.id, start, io.BytesIO(request.body))
        self._use_cache(cache_id)
        return _Reply(200)

    def _commit(self, request: _Incoming, params: dict) -> _Reply:
        cache_id = self._parse_id(params["id"])
        cache = self._reserved(cache_id)
        try:
            self._storage.commit(cache.id, cache.size)
        except (OSError, ValueError) as exc:
            raise _Failure(500, str(exc)) from exc
        cache.complete = True
        self._db_update(cache)
        return _Reply(200)

    def _get(self, request: _Incoming, params: dict) -> _Reply:
        cache_id = self._parse_id(params["id"])
        self._use_cache(cache_id)
        try:
            stream = open(self._storage.filename(cache_id), "rb")  # noqa: SIM115
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return _Reply(404, raw=b"404 page not found\n", content_type="text/plain; charset=utf-8")
        return _Reply(200, stream=stream, content_type="application/octet-stream")

    def _clean(self, request: _Incoming, params: dict) -> _Reply:
        return _Reply(200)

    def _find_cache(self, keys: list[str], version: str) -> Cache | None:
        if not keys:
            return None
        probe = Cache(key=keys[0], version=version)
        probe.fill_key_version_hash()
        exact = self._db_find_by_hash(probe.key_version_hash)
        if exact is not None and exact.complete:
            return exact

        for prefix in keys[1:]:
            for candidate in self._db_from_key(prefix, version):
                if not candidate.key.startswith(prefix):
                    break
                if candidate.complete:
                    return candidate
        return None

    def _use_cache(self, cache_id: int) -> None:
        cache = self._db_get(cache_id)
        if cache is None:
            return
        cache.used_at = int(time.time())
        self._db_update(cache)

    def _gc_cache(self) -> None:
        if not self._gc_lock.acquire(blocking=False):
            return
        try:
            now = time.time()
            if now - self._gc_at < _GC_INTERVAL:
                self._logger.debug("skip gc: %s", time.ctime(self._gc_at))
                return
            self._gc_at = now
            self._logger.debug("gc: %s", time.ctime(now))

            sweeps = (
                ("used_at", _KEEP_TEMP, True),
                ("used_at", _KEEP_UNUSED, False),
                ("created_at", _KEEP_USED, False),
            )
            for column, keep, only_incomplete in sweeps:
                try:
                    caches = self._db_older(column, int(time.time() - keep))
                except (sqlite3.Error, RuntimeError) as exc:
                    self._logger.warning("find caches: %s", exc)
                    continue
                for cache in caches:
                    if only_incomplete and cache.complete:
                        continue
                    self._storage.remove(cache.id)
                    try:
                        self._db_delete(cache.id)
                    except (sqlite3.Error, RuntimeError) as exc:
                        self._logger.warning("delete cache: %s", exc)
                        continue
                    self._logger.info("deleted cache: %s", cache)
        finally:
            self._gc_lock.release()


def _make_request_handler(owner: CacheHandler) -> type[BaseHTTPRequestHandler]:
    class _RequestHandler(BaseHTTPRequestHandler):
        server_version = "actlocal-cache"

        def do_GET(self) -> None:  # noqa: N802
            self._dispatch()

        def do_POST(self) -> None:  # noqa: N802
            self._dispatch()

        def do_PATCH(self) -> None:  # noqa: N802
            self._dispatch()

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            owner._logger.debug(format, *args)

        def _dispatch(self) -> None:
            url = urlsplit(self.path)
            try:
                body = _read_body(self.rfile, self.headers)
            except ValueError as exc:
                self._send(_Reply(400, {"error": f"read body: {exc}"}))
                return
            request = _Incoming(
                method=self.command,
                uri=self.path,
                path=url.path,
                query=parse_qs(url.query, keep_blank_values=True),
                headers=self.headers,
                body=body,
            )
            self._send(owner._handle(request))

        def _send(self, reply: _Reply) -> None:
            stream = reply.stream
            try:
                data = b""
                if reply.status == 204:
                    length = 0
                elif stream is not None:
                    length = os.fstat(stream.fileno()).st_size
                else:
                    data = reply.body()
                    length = len(data)
                self.send_response(reply.status)
                self.send_header("Content-Type", reply.content_type)
                self.send_header("Content-Length", str(length))
                self.end_headers()
                if stream is not None and reply.status != 204:
                    shutil.copyfileobj(stream, self.wfile)
                elif data:
                    self.wfile.write(data)
            finally:
                if stream is not None:
                    stream.close()

    return _RequestHandler


def start_handler(
    directory: str | os.PathLike | None,
    outbound_ip: str | None,
    port: int,
    logger: logging.Logger | None,
) -> CacheHandler:
    """Start a cache server storing data in ``directory`` and listening on ``port``.

    Port 0 picks a free port. Without ``outbound_ip`` the machine's outbound
    address is used in the URLs handed to clients.
    """
    logger = _discard_logger() if logger is None else logger.getChild("artifactcache")

    if not directory:
        directory = os.path.join(os.path.expanduser("~"), ".cache", "actcache")
    directory = os.fspath(directory)
    os.makedirs(directory, mode=0o755, exist_ok=True)

    if not outbound_ip:
        ip = get_outbound_ip()
        if ip is None:
            raise RuntimeError("unable to determine outbound IP address")
        outbound_ip = str(ip)

    handler = CacheHandler(directory, outbound_ip, logger)
    try:
        handler._gc_cache()
        handler._listen(port)
    except BaseException:
        handler.close()
        raise
    return handler