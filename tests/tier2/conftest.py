"""Tier 2 fixtures: real Kubo daemon on localhost."""

from __future__ import annotations

import httpx
import pytest

from seneschal_sponsor.ipfs.client import KuboContentStore

KUBO_RPC_URL = "http://127.0.0.1:5001"


@pytest.fixture(scope="session")
def kubo_available():
    """Check if local Kubo daemon is running. Skip tier2 tests if not."""
    try:
        r = httpx.post(f"{KUBO_RPC_URL}/api/v0/id", timeout=3)
        if r.status_code == 200:
            return True
        pytest.skip("Kubo daemon not available at localhost:5001")
    except (httpx.ConnectError, httpx.TimeoutException):
        pytest.skip("Kubo daemon not available at localhost:5001")


@pytest.fixture
async def kubo_store(kubo_available):
    """KuboContentStore against the real node; unpins what the test added."""
    store = KuboContentStore(KUBO_RPC_URL, upload_timeout=30)
    added: list[str] = []
    original_upload = store.upload

    async def tracking_upload(data: bytes, filename: str = "data") -> str:
        cid = await original_upload(data, filename)
        added.append(cid)
        return cid

    store.upload = tracking_upload
    yield store
    async with httpx.AsyncClient() as client:
        for cid in added:
            await client.post(f"{KUBO_RPC_URL}/api/v0/pin/rm", params={"arg": cid})
