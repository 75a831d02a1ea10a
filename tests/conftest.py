from __future__ import annotations

import pytest

from ssqs.app.domain.models import Queue
from tests.fakes import QUEUE_URL


@pytest.fixture()
def queue() -> Queue:
    return Queue(url=QUEUE_URL, poll_duration=0, visibility_timeout=30)
