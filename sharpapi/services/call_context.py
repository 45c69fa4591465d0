"""Per-call correlation ID via contextvars."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

call_id_var: ContextVar[str] = ContextVar("call_id", default="")


def generate_call_id() -> str:
    """Return a new 32-character hex call ID."""
    return uuid.uuid4().hex


def get_call_id() -> str:
    """Read the current call ID from the contextvar."""
    return call_id_var.get()


@contextmanager
def bind_call_id(call_id: str | None = None) -> Iterator[str]:
    """Bind a call ID for the duration of one client operation.

    An already-bound ID is reused so nested operations log under the
    outermost call.
    """
    current = call_id_var.get()
    if current and call_id is None:
        yield current
        return
    token = call_id_var.set(call_id or generate_call_id())
    try:
        yield call_id_var.get()
    finally:
        call_id_var.reset(token)
