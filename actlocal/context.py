"""Request-scoped values and cancellation passed through executors."""

from __future__ import annotations

import logging
import threading
from typing import Any

_NO_KEY = object()
_DRYRUN_KEY = object()
_JOB_ERROR_KEY = object()
_LOGGER_KEY = object()


class Canceled(Exception):
    """Raised when work is attempted on a cancelled context."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class Context:
    """An immutable chain of values with cancellation that flows to children."""

    def __init__(self, parent: Context | None = None, key: Any = _NO_KEY, value: Any = None) -> None:
        self._parent = parent
        self._key = key
        self._value = value
        self._done = threading.Event()

    def with_value(self, key: Any, value: Any) -> Context:
        """Return a child context carrying ``key`` -> ``value``."""
        return Context(self, key, value)

    def value(self, key: Any) -> Any:
        """Return the nearest value stored under ``key``, or None."""
        ctx: Context | None = self
        while ctx is not None:
            if ctx._key is not _NO_KEY and ctx._key == key:
                return ctx._value
            ctx = ctx._parent
        return None

    def with_cancel(self) -> Context:
        """Return a child that can be cancelled without affecting this one."""
        return Context(self)

    def cancel(self) -> None:
        """Cancel this context and every context derived from it."""
        self._done.set()

    def cancelled(self) -> bool:
        """True if this context or any ancestor has been cancelled."""
        ctx: Context | None = self
        while ctx is not None:
            if ctx._done.is_set():
                return True
            ctx = ctx._parent
        return False

    def check(self) -> None:
        """Raise Canceled if the context has been cancelled."""
        if self.cancelled():
            raise Canceled()


def with_dryrun(ctx: Context, dryrun: bool) -> Context:
    """Return a context that records the dry-run flag."""
    return ctx.with_value(_DRYRUN_KEY, dryrun)


def is_dryrun(ctx: Context) -> bool:
    """True if the context is marked as a dry run."""
    value = ctx.value(_DRYRUN_KEY)
    return value if isinstance(value, bool) else False


def with_job_error_container(ctx: Context) -> Context:
    """Return a context holding a fresh slot for a job error."""
    return ctx.with_value(_JOB_ERROR_KEY, {})


def job_error(ctx: Context) -> BaseException | None:
    """Return the job error stored in the context, if any."""
    container = ctx.value(_JOB_ERROR_KEY)
    if isinstance(container, dict):
        return container.get("error")
    return None


def set_job_error(ctx: Context, err: BaseException | None) -> None:
    """Store ``err`` in the context's job error slot."""
    container = ctx.value(_JOB_ERROR_KEY)
    if not isinstance(container, dict):
        raise LookupError("context has no job error container")
    container["error"] = err


def with_logger(ctx: Context, logger: Any) -> Context:
    """Return a context carrying ``logger``."""
    return ctx.with_value(_LOGGER_KEY, logger)


def get_logger(ctx: Context) -> Any:
    """Return the context's logger, or the package logger."""
    logger = ctx.value(_LOGGER_KEY)
    if logger is not None:
        return logger
    return logging.getLogger("actlocal")