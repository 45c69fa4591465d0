from __future__ import annotations

import pytest

from helpers import RecordingSleep, RecordingWaiter
from sharpapi.services.call_context import call_id_var


@pytest.fixture
def waiter() -> RecordingWaiter:
    return RecordingWaiter()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture(autouse=True)
def _clear_call_id():
    """Make sure no call ID leaks between tests."""
    token = call_id_var.set("")
    yield
    call_id_var.reset(token)
