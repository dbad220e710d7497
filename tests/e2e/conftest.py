"""E2E test fixtures: two independent browsers against one app.

Run E2E tests with USE_DATABASE=false; the shared stores in
dependencies.py are created at import time:

    USE_DATABASE=false pytest tests/e2e/ -v
"""

from __future__ import annotations

import os

import pytest
from httpx import ASGITransport, AsyncClient

os.environ.setdefault("USE_DATABASE", "false")


@pytest.fixture()
async def browser(app):
    """A second browser with its own cookie jar and device id."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="https://test") as c:
        yield c
