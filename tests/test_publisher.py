"""KuboContentStore and PublicationStage against a fake Kubo RPC server."""

from __future__ import annotations

import hashlib
import json

import pytest
from aiohttp import web

from seneschal_sponsor.commitment.builder import CommitmentBuilder
from seneschal_sponsor.errors import PublicationError
from seneschal_sponsor.ipfs.client import KuboContentStore
from seneschal_sponsor.workflow.stages import PublicationStage

from tests.conftest import make_test_config
from tests.factories import PROPOSAL_URL, make_content, make_draft

FAKE_KUBO_PORT = 9311


def _fake_cid(data: bytes) -> str:
    return "bafkrei" + hashlib.sha256(data).hexdigest()[:52]


@pytest.fixture
async def fake_kubo():
    """Local server speaking the /api/v0/add and /api/v0/pin/ls subset of Kubo.

    ``state["fail"]`` holds status codes returned (and consumed) before
    the next successful add.
    """
    state = {"fail": [], "added": {}, "params": []}

    async def handle_add(request):
        state["params"].append(dict(request.query))
        if state["fail"]:
            return web.Response(status=state["fail"].pop(0), text="kubo says no")
        reader = await request.multipart()
        part = await reader.next()
        data = await part.read()
        cid = _fake_cid(bytes(data))
        state["added"][cid] = (part.filename, bytes(data))
        return web.json_response({"Name": part.filename, "Hash": cid, "Size": str(len(data))})

    async def handle_pin_ls(request):
        cid = request.query.get("arg", "")
        if cid in state["added"]:
            return web.json_response({"Keys": {cid: {"Type": "recursive"}}})
        return web.json_response({"Message": f"path '{cid}' is not pinned", "Code": 0}, status=500)

    app = web.Application()
    app.router.add_post("/api/v0/add", handle_add)
    app.router.add_post("/api/v0/pin/ls", handle_pin_ls)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", FAKE_KUBO_PORT)
    await site.start()
    yield f"http://127.0.0.1:{FAKE_KUBO_PORT}", state
    await runner.cleanup()


# ── KuboContentStore ──────────────────────────────────────────


async def test_upload_returns_cid_and_pins(fake_kubo):
    url, state = fake_kubo
    store = KuboContentStore(url, upload_timeout=5)

    cid = await store.upload(b"hello seneschal", "hello.txt")

    assert cid == _fake_cid(b"hello seneschal")
    assert state["added"][cid] == ("hello.txt", b"hello seneschal")
    assert state["params"][0] == {"cid-version": "1", "hash": "sha2-256", "pin": "true"}
    assert await store.verify_pinned(cid)
    assert not await store.verify_pinned("bafynotthere")


async def test_upload_retries_server_errors(fake_kubo):
    url, state = fake_kubo
    state["fail"] = [503, 502]
    store = KuboContentStore(url, upload_timeout=5, upload_retries=3)

    cid = await store.upload(b"retry me")

    assert cid == _fake_cid(b"retry me")
    assert len(state["params"]) == 3


async def test_upload_gives_up_after_retries(fake_kubo):
    url, state = fake_kubo
    state["fail"] = [500, 500]
    store = KuboContentStore(url, upload_timeout=5, upload_retries=2)

    with pytest.raises(PublicationError, match="HTTP 500"):
        await store.upload(b"never")


async def test_client_error_is_not_retried(fake_kubo):
    url, state = fake_kubo
    state["fail"] = [400]
    store = KuboContentStore(url, upload_timeout=5)

    with pytest.raises(PublicationError, match="HTTP 400"):
        await store.upload(b"bad request")
    assert len(state["params"]) == 1


async def test_unreachable_node_is_publication_error():
    store = KuboContentStore("http://127.0.0.1:9", upload_timeout=1, upload_retries=1)

    with pytest.raises(PublicationError):
        await store.upload(b"nobody home")


# ── PublicationStage over HTTP ────────────────────────────────


async def test_publish_uploads_image_then_bundle(fake_kubo):
    url, state = fake_kubo
    payload = CommitmentBuilder.from_config(make_test_config()).build(make_draft())
    stage = PublicationStage(KuboContentStore(url, upload_timeout=5))
    content = make_content()

    ref = await stage.publish(content, payload)

    assert ref.image_cid == _fake_cid(content.image)
    name, raw = state["added"][ref.cid]
    assert name == "metadata.json"
    bundle = json.loads(raw)
    assert bundle["image"] == f"ipfs://{ref.image_cid}"
    assert bundle["external_url"] == PROPOSAL_URL
    assert bundle["source_digest"] == content.source_digest


async def test_publish_is_content_addressed(fake_kubo):
    """Publishing the same content twice yields the same CID."""
    url, _ = fake_kubo
    payload = CommitmentBuilder.from_config(make_test_config()).build(make_draft())
    stage = PublicationStage(KuboContentStore(url, upload_timeout=5))

    first = await stage.publish(make_content(), payload)
    second = await stage.publish(make_content(), payload)

    assert first == second


async def test_zero_retries_still_uploads_once(fake_kubo):
    url, state = fake_kubo
    store = KuboContentStore(url, upload_timeout=5, upload_retries=0)

    cid = await store.upload(b"at least once")

    assert cid == _fake_cid(b"at least once")
    assert len(state["params"]) == 1
